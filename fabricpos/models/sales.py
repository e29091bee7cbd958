import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Date, Enum, Numeric, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fabricpos.database import Base


class BillStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    UPI = "UPI"
    CARD = "CARD"
    NETBANKING = "NETBANKING"
    WALLET = "WALLET"
    CHEQUE = "CHEQUE"


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (UniqueConstraint("organization_id", "bill_number", name="uq_bill_org_number"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    bill_number = Column(String, index=True, nullable=False)  # CS241201001

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    status = Column(Enum(BillStatus), default=BillStatus.ACTIVE, nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)

    total_amount = Column(Numeric(10, 2), default=0)
    discount_amount = Column(Numeric(10, 2), default=0)
    tax_amount = Column(Numeric(10, 2), default=0)
    final_amount = Column(Numeric(10, 2), default=0)
    paid_amount = Column(Numeric(10, 2), default=0)

    delivery_date = Column(Date, nullable=True)
    notes = Column(String, nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="bills")
    created_by = relationship("User")
    items = relationship("BillItem", back_populates="bill", cascade="all, delete-orphan", order_by="BillItem.id")
    payments = relationship("Payment", back_populates="bill", cascade="all, delete-orphan", order_by="Payment.id")

    @property
    def balance_due(self):
        return (self.final_amount or 0) - (self.paid_amount or 0)


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    custom_name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    quantity = Column(Numeric(10, 2), nullable=False)
    unit = Column(String, default="pcs")
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0)
    tailoring_price = Column(Numeric(10, 2), default=0)
    total_price = Column(Numeric(10, 2), nullable=False)

    is_tailoring = Column(Boolean, default=False)
    measurements = Column(JSON, nullable=True)
    notes = Column(String, nullable=True)

    bill = relationship("Bill", back_populates="items")
    product = relationship("Product")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.COMPLETED, nullable=False)
    reference = Column(String, nullable=True)  # UPI txn id, cheque number
    notes = Column(String, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bill = relationship("Bill", back_populates="payments")
