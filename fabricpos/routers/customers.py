# fabricpos/routers/customers.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from fabricpos.crud import customers as crud
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import Bill, Customer, CustomerMeasurement, Gender
from fabricpos.pagination import Pagination, sanitize_query
from fabricpos.schemas.bills import BillRead
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.customers import (
    CustomerCreate, CustomerDetail, CustomerRead, CustomerUpdate,
    MeasurementCreate, MeasurementRead, MeasurementUpdate,
)
from fabricpos.security import Workspace, check_include_inactive, get_workspace, require_admin

router = APIRouter()

CUSTOMER_SORT_FIELDS = ("created_at", "first_name", "last_name", "city")


def _customers(db: Session, workspace: Workspace, include_inactive: bool = False):
    query = db.query(Customer).filter(Customer.organization_id == workspace.id)
    return query if include_inactive else query.filter(Customer.is_active == True)


# --------------------------------------------------------------------------
# 1. LIST CUSTOMERS
# --------------------------------------------------------------------------
@router.get("/", response_model=Envelope[Page[CustomerRead]])
def get_customers(
    search: Optional[str] = None,
    city: Optional[str] = None,
    gender: Optional[Gender] = None,
    include_inactive: bool = False,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = _customers(db, workspace, check_include_inactive(workspace, include_inactive))
    search = sanitize_query(search)
    if search:
        query = crud.search_filter(query, search)
    city = sanitize_query(city)
    if city:
        query = query.filter(Customer.city.ilike(city))
    if gender is not None:
        query = query.filter(Customer.gender == gender)
    return ok(paging.paginate(query, Customer, CUSTOMER_SORT_FIELDS))


@router.get("/search/{q}", response_model=Envelope[List[CustomerRead]])
def search_customers(q: str, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    term = sanitize_query(q)
    if not term:
        raise AppError.bad_request("Search term is required")
    customers = crud.search_filter(_customers(db, workspace), term).order_by(Customer.first_name).limit(20).all()
    return ok(customers)


@router.get("/stats/overview", response_model=Envelope[dict])
def customer_stats(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    base = db.query(Customer).filter(Customer.organization_id == workspace.id)
    now = datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)

    by_gender = {g.value: 0 for g in Gender}
    by_gender["UNSPECIFIED"] = 0
    for gender, count in (
        base.filter(Customer.is_active == True)
        .with_entities(Customer.gender, func.count(Customer.id))
        .group_by(Customer.gender)
        .all()
    ):
        by_gender[gender.value if gender else "UNSPECIFIED"] = count

    return ok({
        "total": base.count(),
        "active": base.filter(Customer.is_active == True).count(),
        "new_this_month": base.filter(Customer.created_at >= month_start).count(),
        "by_gender": by_gender,
    })


# --------------------------------------------------------------------------
# 2. DETAIL
# --------------------------------------------------------------------------
@router.get("/{customer_id}", response_model=Envelope[CustomerDetail])
def get_customer(customer_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    customer = crud.get_customer(db, workspace.id, customer_id)
    return ok(crud.customer_detail(db, customer))


# --------------------------------------------------------------------------
# 3. CREATE / UPDATE / DELETE
# --------------------------------------------------------------------------
@router.post("/", response_model=Envelope[CustomerRead], status_code=status.HTTP_201_CREATED)
def create_customer(
    customer_in: CustomerCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    crud.ensure_unique_contact(db, workspace.id, customer_in.email, customer_in.phone)
    customer = Customer(
        organization_id=workspace.id,
        created_by_id=workspace.user.id,
        is_active=True,
        **customer_in.model_dump(),
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return ok(customer, "Customer created successfully")


@router.put("/{customer_id}", response_model=Envelope[CustomerRead])
def update_customer(
    customer_id: int,
    customer_in: CustomerUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    customer = crud.get_customer(db, workspace.id, customer_id, active_only=False)
    update_data = customer_in.model_dump(exclude_unset=True)
    if "first_name" in update_data and not update_data["first_name"]:
        raise AppError.bad_request("First name cannot be empty")
    crud.ensure_unique_contact(
        db, workspace.id, update_data.get("email"), update_data.get("phone"), exclude_id=customer.id
    )

    for field, value in update_data.items():
        setattr(customer, field, value)
    db.commit()
    db.refresh(customer)
    return ok(customer, "Customer updated successfully")


@router.delete("/{customer_id}", response_model=Envelope[None])
def delete_customer(customer_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(require_admin)):
    customer = crud.get_customer(db, workspace.id, customer_id)
    customer.is_active = False
    db.commit()
    return ok(None, "Customer deleted successfully")


# --------------------------------------------------------------------------
# 4. MEASUREMENTS
# --------------------------------------------------------------------------
@router.get("/{customer_id}/measurements", response_model=Envelope[List[MeasurementRead]])
def list_measurements(customer_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    customer = crud.get_customer(db, workspace.id, customer_id)
    return ok([m for m in customer.measurements if m.is_active])


@router.post(
    "/{customer_id}/measurements",
    response_model=Envelope[MeasurementRead],
    status_code=status.HTTP_201_CREATED,
)
def add_measurement(
    customer_id: int,
    measurement_in: MeasurementCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    customer = crud.get_customer(db, workspace.id, customer_id)
    measurement = CustomerMeasurement(customer_id=customer.id, is_active=True, **measurement_in.model_dump())
    db.add(measurement)
    db.commit()
    db.refresh(measurement)
    return ok(measurement, "Measurements saved")


@router.put("/{customer_id}/measurements/{measurement_id}", response_model=Envelope[MeasurementRead])
def update_measurement(
    customer_id: int,
    measurement_id: int,
    measurement_in: MeasurementUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    customer = crud.get_customer(db, workspace.id, customer_id)
    measurement = crud.get_measurement(db, customer, measurement_id)
    update_data = measurement_in.model_dump(exclude_unset=True)
    if "measurements" in update_data and not update_data["measurements"]:
        raise AppError.bad_request("At least one measurement is required")

    for field, value in update_data.items():
        setattr(measurement, field, value)
    db.commit()
    db.refresh(measurement)
    return ok(measurement, "Measurements updated")


@router.delete("/{customer_id}/measurements/{measurement_id}", response_model=Envelope[None])
def delete_measurement(
    customer_id: int,
    measurement_id: int,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    customer = crud.get_customer(db, workspace.id, customer_id)
    measurement = crud.get_measurement(db, customer, measurement_id)
    measurement.is_active = False
    db.commit()
    return ok(None, "Measurements deleted")


# --------------------------------------------------------------------------
# 5. BILL HISTORY
# --------------------------------------------------------------------------
@router.get("/{customer_id}/bills", response_model=Envelope[Page[BillRead]])
def customer_bills(
    customer_id: int,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    customer = crud.get_customer(db, workspace.id, customer_id, active_only=False)
    query = db.query(Bill).filter(Bill.organization_id == workspace.id, Bill.customer_id == customer.id)
    return ok(paging.paginate(query, Bill, ("created_at", "final_amount", "bill_number")))
