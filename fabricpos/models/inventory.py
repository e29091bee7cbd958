import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Enum, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fabricpos.database import Base


class MovementType(str, enum.Enum):
    IN = "IN"                  # purchase / restock
    OUT = "OUT"                # sale or write-off
    ADJUSTMENT = "ADJUSTMENT"  # signed correction after a count
    RETURN = "RETURN"          # goods back from a customer or a cancelled bill


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    type = Column(Enum(MovementType), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False)  # signed: +10 or -5
    qty_before = Column(Numeric(10, 2), nullable=False)
    qty_after = Column(Numeric(10, 2), nullable=False)

    reason = Column(String, nullable=True)
    reference = Column(String, nullable=True)  # bill number, supplier invoice...
    notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product")
    created_by = relationship("User")
