from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fabricpos.exceptions import AppError
from fabricpos.models import Bill, Customer, CustomerMeasurement


def get_customer(db: Session, organization_id: int, customer_id: int, active_only: bool = True) -> Customer:
    query = db.query(Customer).filter(Customer.id == customer_id, Customer.organization_id == organization_id)
    if active_only:
        query = query.filter(Customer.is_active == True)
    customer = query.first()
    if not customer:
        raise AppError.not_found("Customer")
    return customer


def ensure_unique_contact(db: Session, organization_id: int, email: Optional[str], phone: Optional[str],
                          exclude_id: int = None):
    """Email and phone identify a customer inside one workspace."""
    if email:
        existing = db.query(Customer).filter(
            Customer.organization_id == organization_id,
            func.lower(Customer.email) == email.lower(),
        ).first()
        if existing and existing.id != exclude_id:
            raise AppError.conflict("A customer with this email already exists")
    if phone:
        existing = db.query(Customer).filter(
            Customer.organization_id == organization_id, Customer.phone == phone
        ).first()
        if existing and existing.id != exclude_id:
            raise AppError.conflict("A customer with this phone number already exists")


def search_filter(query, term: str):
    like = f"%{term}%"
    full_name = Customer.first_name + " " + func.coalesce(Customer.last_name, "")
    return query.filter(or_(
        Customer.first_name.ilike(like),
        Customer.last_name.ilike(like),
        full_name.ilike(like),
        Customer.email.ilike(like),
        Customer.phone.ilike(like),
    ))


def customer_detail(db: Session, customer: Customer) -> dict:
    bill_count = db.query(func.count(Bill.id)).filter(Bill.customer_id == customer.id).scalar()
    data = {column: getattr(customer, column) for column in Customer.__table__.columns.keys()}
    data["measurements"] = [m for m in customer.measurements if m.is_active]
    data["bill_count"] = bill_count or 0
    return data


def get_measurement(db: Session, customer: Customer, measurement_id: int) -> CustomerMeasurement:
    measurement = db.query(CustomerMeasurement).filter(
        CustomerMeasurement.id == measurement_id,
        CustomerMeasurement.customer_id == customer.id,
        CustomerMeasurement.is_active == True,
    ).first()
    if not measurement:
        raise AppError.not_found("Measurement")
    return measurement
