import enum
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Date, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fabricpos.database import Base


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


MEASUREMENT_KEYS = ("chest", "waist", "hip", "shoulder", "sleeve", "length", "inseam", "neck")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    first_name = Column(String, index=True, nullable=False)
    last_name = Column(String, index=True, nullable=True)
    email = Column(String, index=True, nullable=True)
    phone = Column(String, index=True, nullable=True)

    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    pincode = Column(String, nullable=True)

    date_of_birth = Column(Date, nullable=True)
    gender = Column(Enum(Gender), nullable=True)
    notes = Column(String, nullable=True)

    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    measurements = relationship(
        "CustomerMeasurement", back_populates="customer", cascade="all, delete-orphan",
        order_by="CustomerMeasurement.id",
    )
    bills = relationship("Bill", back_populates="customer")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class CustomerMeasurement(Base):
    __tablename__ = "customer_measurements"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    name = Column(String, nullable=False)  # "Shirt", "Sherwani"...
    measurements = Column(JSON, nullable=False, default=dict)
    notes = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="measurements")
