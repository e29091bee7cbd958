from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from fabricpos.schemas.common import APIModel


class BarcodeFormat(str, Enum):
    CODE128 = "CODE128"
    CODE39 = "CODE39"
    EAN13 = "EAN13"
    EAN8 = "EAN8"
    UPC = "UPC"
    QRCODE = "QRCODE"


class BarcodeRequest(APIModel):
    text: str = Field(min_length=1, max_length=500)
    format: BarcodeFormat = BarcodeFormat.CODE128
    width: int = Field(default=2, ge=1, le=10)
    height: int = Field(default=100, ge=50, le=500)
    scale: int = Field(default=3, ge=1, le=10)
    include_text: bool = True


class LabelRequest(BarcodeRequest):
    title: Optional[str] = Field(default=None, max_length=60)
    price: Optional[Decimal] = None
    currency_symbol: str = "Rs."


class DataUrlResponse(BaseModel):
    format: BarcodeFormat
    data_url: str
