from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from fabricpos.models import BillStatus, PaymentMethod, PaymentStatus
from fabricpos.schemas.common import APIModel
from fabricpos.schemas.customers import CustomerBrief


class BillItemCreate(APIModel):
    product_id: Optional[int] = None
    custom_name: Optional[str] = None
    description: Optional[str] = None
    quantity: Decimal = Field(gt=0)
    unit: Optional[str] = None
    unit_price: Optional[Decimal] = Field(default=None, ge=0)  # defaults to the selling price
    discount_amount: Decimal = Field(default=Decimal(0), ge=0)
    tailoring_price: Decimal = Field(default=Decimal(0), ge=0)
    is_tailoring: bool = False
    measurements: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def product_or_name(self):
        if self.product_id is None:
            if not self.custom_name:
                raise ValueError("Each item needs a product_id or a custom_name")
            if self.unit_price is None:
                raise ValueError("unit_price is required for custom items")
        return self


class BillCreate(APIModel):
    customer_id: Optional[int] = None
    items: List[BillItemCreate] = Field(min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    discount_amount: Decimal = Field(default=Decimal(0), ge=0)
    tax_amount: Decimal = Field(default=Decimal(0), ge=0)
    amount_paid: Decimal = Field(default=Decimal(0), ge=0)
    payment_reference: Optional[str] = None
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    draft: bool = False


class BillUpdate(APIModel):
    customer_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[BillStatus] = None

    @model_validator(mode="after")
    def no_cancel_here(self):
        if self.status in (BillStatus.CANCELLED, BillStatus.RETURNED):
            raise ValueError("Use the cancel endpoint to cancel a bill")
        return self


class BillCancel(APIModel):
    reason: str = Field(min_length=1, max_length=500)


class PaymentCreate(APIModel):
    amount: Decimal = Field(gt=0)
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentRead(BaseModel):
    id: int
    bill_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BillItemRead(BaseModel):
    id: int
    product_id: Optional[int] = None
    custom_name: str
    description: Optional[str] = None
    quantity: Decimal
    unit: Optional[str] = None
    unit_price: Decimal
    discount_amount: Decimal
    tailoring_price: Decimal
    total_price: Decimal
    is_tailoring: bool
    measurements: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BillRead(BaseModel):
    id: int
    bill_number: str
    customer_id: Optional[int] = None
    customer: Optional[CustomerBrief] = None
    status: BillStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[BillItemRead] = []
    payments: List[PaymentRead] = []

    class Config:
        from_attributes = True


class WhatsAppSendRequest(APIModel):
    phone: Optional[str] = None  # falls back to the customer's phone
    message: Optional[str] = None
