import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Numeric, DateTime, Enum, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fabricpos.database import Base


class ProductType(str, enum.Enum):
    FABRIC = "FABRIC"                        # sold by length
    READY_MADE = "READY_MADE"
    ACCESSORY = "ACCESSORY"
    TAILORING_SERVICE = "TAILORING_SERVICE"  # no stock
    CUSTOM = "CUSTOM"                        # no stock


UNTRACKED_TYPES = (ProductType.TAILORING_SERVICE, ProductType.CUSTOM)


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_category_org_name"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_product_org_sku"),
        UniqueConstraint("organization_id", "barcode", name="uq_product_org_barcode"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)

    sku = Column(String, index=True, nullable=False)
    barcode = Column(String, index=True, nullable=True)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    type = Column(Enum(ProductType), default=ProductType.READY_MADE, nullable=False)
    unit = Column(String, default="pcs")  # pcs, m, set

    base_price = Column(Numeric(10, 2), nullable=False)
    selling_price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=True)

    stock_quantity = Column(Numeric(10, 2), default=0, nullable=False)
    min_stock = Column(Numeric(10, 2), default=0)
    max_stock = Column(Numeric(10, 2), nullable=True)

    is_tailoring = Column(Boolean, default=False)
    tailoring_price = Column(Numeric(10, 2), nullable=True)

    image_url = Column(String, nullable=True)
    specifications = Column(JSON, nullable=True)  # fabric, colour, size...

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="products")

    @property
    def tracks_stock(self) -> bool:
        return self.type not in UNTRACKED_TYPES

    @property
    def is_low_stock(self) -> bool:
        return self.tracks_stock and (self.stock_quantity or 0) <= (self.min_stock or 0)
