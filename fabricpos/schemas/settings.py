from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from fabricpos.models import SettingType
from fabricpos.schemas.common import APIModel


class SettingRead(BaseModel):
    key: str
    value: Any = None
    type: SettingType
    category: str
    updated_at: Optional[datetime] = None


class SettingUpsert(APIModel):
    value: Any
    type: Optional[SettingType] = None  # inferred from the value when omitted
    category: str = "general"


# --- WhatsApp ---
class WhatsAppMethod(str, Enum):
    WEB = "web"
    API = "api"


class WhatsAppSettings(BaseModel):
    enabled: bool = False
    method: WhatsAppMethod = WhatsAppMethod.WEB
    api_url: Optional[str] = None
    access_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    business_account_id: Optional[str] = None


class WhatsAppSettingsUpdate(APIModel):
    enabled: Optional[bool] = None
    method: Optional[WhatsAppMethod] = None
    api_url: Optional[str] = None
    access_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    business_account_id: Optional[str] = None


class WhatsAppTestRequest(APIModel):
    phone: str
    message: str = "Test message from FabricPOS"


# --- Business ---
class InvoiceTemplate(str, Enum):
    MODERN = "modern"
    CLASSIC = "classic"
    MINIMAL = "minimal"
    ELEGANT = "elegant"


class BusinessSettings(BaseModel):
    business_name: str = "FabricCraft Clothing Store"
    business_address: Optional[str] = None
    business_city: Optional[str] = None
    business_state: Optional[str] = None
    business_pincode: Optional[str] = None
    business_phone: Optional[str] = None
    business_email: Optional[str] = None
    business_website: Optional[str] = None
    business_gstin: Optional[str] = None
    business_logo: Optional[str] = None  # data URL
    invoice_template: InvoiceTemplate = InvoiceTemplate.MODERN
    invoice_prefix: str = "CS"
    tax_rate: Decimal = Decimal("18")
    currency: str = "INR"
    currency_symbol: str = "₹"


class BusinessSettingsUpdate(APIModel):
    business_name: Optional[str] = Field(default=None, min_length=1)
    business_address: Optional[str] = None
    business_city: Optional[str] = None
    business_state: Optional[str] = None
    business_pincode: Optional[str] = None
    business_phone: Optional[str] = None
    business_email: Optional[str] = None
    business_website: Optional[str] = None
    business_gstin: Optional[str] = None
    invoice_template: Optional[InvoiceTemplate] = None
    invoice_prefix: Optional[str] = Field(default=None, min_length=1, max_length=6, pattern=r"^[A-Za-z0-9]+$")
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    currency_symbol: Optional[str] = None

    @model_validator(mode="after")
    def gstin_format(self):
        if self.business_gstin and len(self.business_gstin) != 15:
            raise ValueError("GSTIN must be 15 characters")
        return self


class SampleInvoiceRequest(APIModel):
    template: Optional[InvoiceTemplate] = None
