from datetime import date, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from fabricpos.models import Gender
from fabricpos.schemas.common import APIModel

MeasurementValue = Union[float, str]


class CustomerBase(APIModel):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def phone_digits(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, ""):
            return None
        digits = "".join(ch for ch in value if ch.isdigit())
        if not 10 <= len(digits) <= 13:
            raise ValueError("Phone number must have 10 to 13 digits")
        return value

    @field_validator("pincode")
    @classmethod
    def pincode_format(cls, value: Optional[str]) -> Optional[str]:
        if value and (not value.isdigit() or len(value) != 6):
            raise ValueError("Pincode must be 6 digits")
        return value or None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value):
        return value or None


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(CustomerBase):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    is_active: Optional[bool] = None


# --- Measurements ---
class MeasurementCreate(APIModel):
    name: str = Field(min_length=1, max_length=60)
    measurements: Dict[str, MeasurementValue]
    notes: Optional[str] = None

    @model_validator(mode="after")
    def not_empty(self):
        if not any(str(v).strip() for v in self.measurements.values()):
            raise ValueError("At least one measurement is required")
        return self


class MeasurementUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    measurements: Optional[Dict[str, MeasurementValue]] = None
    notes: Optional[str] = None


class MeasurementRead(BaseModel):
    id: int
    customer_id: int
    name: str
    measurements: Dict[str, MeasurementValue]
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerBrief(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    class Config:
        from_attributes = True


class CustomerRead(CustomerBrief):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class CustomerDetail(CustomerRead):
    measurements: List[MeasurementRead] = []
    bill_count: int = 0
