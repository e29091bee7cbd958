from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, model_validator

from fabricpos.models import MovementType
from fabricpos.schemas.common import APIModel
from fabricpos.schemas.products import ProductBrief


class MovementCreate(APIModel):
    product_id: int
    type: MovementType
    quantity: Decimal  # ADJUSTMENT is signed, the rest positive
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_quantity(self):
        if self.type == MovementType.ADJUSTMENT:
            if self.quantity == 0:
                raise ValueError("Adjustment quantity cannot be zero")
        elif self.quantity <= 0:
            raise ValueError("Quantity must be greater than zero")
        return self


class MovementRead(BaseModel):
    id: int
    product_id: int
    product: Optional[ProductBrief] = None
    type: MovementType
    quantity: Decimal
    qty_before: Decimal
    qty_after: Decimal
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockInfo(BaseModel):
    product: ProductBrief
    stock_quantity: Decimal
    min_stock: Optional[Decimal] = None
    max_stock: Optional[Decimal] = None
    is_low_stock: bool
    recent_movements: List[MovementRead] = []
