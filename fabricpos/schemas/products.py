from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from fabricpos.models import ProductType
from fabricpos.schemas.common import APIModel


# --- Categories ---
class CategoryCreate(APIModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryBrief(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CategoryRead(CategoryBrief):
    description: Optional[str] = None
    is_active: bool
    product_count: int = 0
    created_at: Optional[datetime] = None


# --- Products ---
class ProductCreate(APIModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    sku: str = Field(min_length=1, max_length=64)
    barcode: Optional[str] = None  # defaults to the SKU
    category_id: Optional[int] = None
    type: ProductType = ProductType.READY_MADE
    unit: str = "pcs"

    base_price: Decimal = Field(ge=0)
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)

    initial_stock: Decimal = Field(default=Decimal(0), ge=0)
    min_stock: Decimal = Field(default=Decimal(0), ge=0)
    max_stock: Optional[Decimal] = Field(default=None, ge=0)

    is_tailoring: bool = False
    tailoring_price: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_stock_bounds(self):
        if self.max_stock is not None and self.max_stock < self.min_stock:
            raise ValueError("max_stock cannot be lower than min_stock")
        return self


class ProductUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    sku: Optional[str] = Field(default=None, min_length=1, max_length=64)
    barcode: Optional[str] = None
    category_id: Optional[int] = None
    type: Optional[ProductType] = None
    unit: Optional[str] = None
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    min_stock: Optional[Decimal] = Field(default=None, ge=0)
    max_stock: Optional[Decimal] = Field(default=None, ge=0)
    is_tailoring: Optional[bool] = None
    tailoring_price: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class ProductBrief(BaseModel):
    id: int
    name: str
    sku: str

    class Config:
        from_attributes = True


class ProductRead(ProductBrief):
    description: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[int] = None
    category: Optional[CategoryBrief] = None
    type: ProductType
    unit: Optional[str] = None
    base_price: Decimal
    selling_price: Decimal
    cost_price: Optional[Decimal] = None
    stock_quantity: Decimal
    min_stock: Optional[Decimal] = None
    max_stock: Optional[Decimal] = None
    is_tailoring: bool
    tailoring_price: Optional[Decimal] = None
    image_url: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None
    is_active: bool
    is_low_stock: bool = False
    tracks_stock: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportResult(BaseModel):
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = []
