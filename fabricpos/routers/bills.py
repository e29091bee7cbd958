# fabricpos/routers/bills.py
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, Response
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from fabricpos.crud import bills as crud
from fabricpos.crud.settings import get_business_settings, get_whatsapp_settings
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import Bill, BillItem, BillStatus, PaymentMethod, PaymentStatus
from fabricpos.pagination import Pagination, between_dates, sanitize_query
from fabricpos.schemas.bills import (
    BillCancel, BillCreate, BillRead, BillUpdate, PaymentCreate, PaymentRead, WhatsAppSendRequest,
)
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.settings import InvoiceTemplate
from fabricpos.security import Workspace, get_workspace, require_admin
from fabricpos.utils import whatsapp
from fabricpos.utils.pdf_generator import generate_invoice_html, generate_invoice_pdf, invoice_from_bill

logger = logging.getLogger(__name__)

router = APIRouter()

BILL_SORT_FIELDS = ("created_at", "bill_number", "final_amount", "paid_amount", "status", "delivery_date")


def _money(value) -> float:
    return round(float(value or 0), 2)


def _load_bill(db: Session, workspace: Workspace, bill_id: int) -> Bill:
    bill = (
        db.query(Bill)
        .options(joinedload(Bill.items), joinedload(Bill.payments), joinedload(Bill.customer))
        .filter(Bill.id == bill_id, Bill.organization_id == workspace.id)
        .first()
    )
    if not bill:
        raise AppError.not_found("Bill")
    return bill


# ==========================================
# 1. List / detail
# ==========================================
@router.get("/", response_model=Envelope[Page[BillRead]])
def read_bills(
    customer_id: Optional[int] = None,
    status: Optional[BillStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = db.query(Bill).filter(Bill.organization_id == workspace.id)
    if customer_id is not None:
        query = query.filter(Bill.customer_id == customer_id)
    if status is not None:
        query = query.filter(Bill.status == status)
    if payment_status is not None:
        query = query.filter(Bill.payment_status == payment_status)
    query = between_dates(query, Bill.created_at, date_from, date_to)
    search = sanitize_query(search)
    if search:
        query = query.filter(Bill.bill_number.ilike(f"%{search}%"))
    return ok(paging.paginate(query, Bill, BILL_SORT_FIELDS))


@router.get("/stats/overview", response_model=Envelope[dict])
def bill_stats(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    base = between_dates(db.query(Bill).filter(Bill.organization_id == workspace.id), Bill.created_at, date_from, date_to)
    billed = base.filter(Bill.status != BillStatus.CANCELLED)

    count, revenue, paid = billed.with_entities(
        func.count(Bill.id),
        func.coalesce(func.sum(Bill.final_amount), 0),
        func.coalesce(func.sum(Bill.paid_amount), 0),
    ).one()

    by_method = {m.value: {"count": 0, "amount": 0.0} for m in PaymentMethod}
    for method, n, amount in (
        billed.with_entities(Bill.payment_method, func.count(Bill.id), func.sum(Bill.final_amount))
        .group_by(Bill.payment_method)
        .all()
    ):
        by_method[method.value] = {"count": n, "amount": _money(amount)}

    by_status = {s.value: 0 for s in BillStatus}
    for bill_status, n in base.with_entities(Bill.status, func.count(Bill.id)).group_by(Bill.status).all():
        by_status[bill_status.value] = n

    return ok({
        "total_bills": count,
        "total_revenue": _money(revenue),
        "total_paid": _money(paid),
        "outstanding": _money(Decimal(str(revenue)) - Decimal(str(paid))),
        "average_bill": _money(Decimal(str(revenue)) / count) if count else 0.0,
        "by_payment_method": by_method,
        "by_status": by_status,
    })


@router.get("/reports/daily-sales", response_model=Envelope[dict])
def daily_sales(
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    day = day or datetime.utcnow().date()
    bills = between_dates(
        db.query(Bill).filter(Bill.organization_id == workspace.id, Bill.status != BillStatus.CANCELLED),
        Bill.created_at, day, day,
    )
    total, count = bills.with_entities(func.coalesce(func.sum(Bill.final_amount), 0), func.count(Bill.id)).one()

    bill_ids = bills.with_entities(Bill.id)
    top_products = (
        db.query(
            BillItem.product_id,
            BillItem.custom_name,
            func.sum(BillItem.quantity).label("quantity"),
            func.sum(BillItem.total_price).label("revenue"),
        )
        .filter(BillItem.bill_id.in_(bill_ids))
        .group_by(BillItem.product_id, BillItem.custom_name)
        .order_by(func.sum(BillItem.total_price).desc())
        .limit(10)
        .all()
    )
    methods = (
        bills.with_entities(Bill.payment_method, func.count(Bill.id), func.sum(Bill.final_amount))
        .group_by(Bill.payment_method)
        .all()
    )

    return ok({
        "date": day.isoformat(),
        "total_sales": _money(total),
        "bill_count": count,
        "top_products": [
            {"product_id": p.product_id, "name": p.custom_name, "quantity": _money(p.quantity), "revenue": _money(p.revenue)}
            for p in top_products
        ],
        "payment_methods": [
            {"method": method.value, "count": n, "amount": _money(amount)} for method, n, amount in methods
        ],
    })


@router.get("/{bill_id}", response_model=Envelope[BillRead])
def read_bill(bill_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(_load_bill(db, workspace, bill_id))


# ==========================================
# 2. Create / update / cancel
# ==========================================
@router.post("/", response_model=Envelope[BillRead], status_code=status.HTTP_201_CREATED)
def create_bill(
    bill_in: BillCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = crud.create_bill(db, workspace.id, bill_in, workspace.user)
    db.commit()
    db.refresh(bill)
    return ok(bill, "Bill created successfully")


@router.put("/{bill_id}", response_model=Envelope[BillRead])
def update_bill(
    bill_id: int,
    bill_in: BillUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = crud.get_bill(db, workspace.id, bill_id)
    crud.update_bill(db, workspace.id, bill, bill_in)
    db.commit()
    db.refresh(bill)
    return ok(bill, "Bill updated successfully")


@router.post("/{bill_id}/cancel", response_model=Envelope[BillRead])
def cancel_bill(
    bill_id: int,
    data: BillCancel,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = crud.get_bill(db, workspace.id, bill_id)
    crud.cancel_bill(db, bill, data.reason, workspace.user)
    db.commit()
    db.refresh(bill)
    return ok(bill, "Bill cancelled successfully")


# ==========================================
# 3. Payments
# ==========================================
@router.post("/{bill_id}/payments", response_model=Envelope[PaymentRead], status_code=status.HTTP_201_CREATED)
def add_payment(
    bill_id: int,
    payment_in: PaymentCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = crud.get_bill(db, workspace.id, bill_id)
    payment = crud.add_payment(db, bill, payment_in, workspace.user)
    db.commit()
    db.refresh(payment)
    return ok(payment, "Payment recorded successfully")


@router.get("/{bill_id}/payments", response_model=Envelope[List[PaymentRead]])
def list_payments(bill_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(crud.get_bill(db, workspace.id, bill_id).payments)


# ==========================================
# 4. Invoice (PDF / HTML) and WhatsApp
# ==========================================
@router.get("/{bill_id}/invoice")
def bill_invoice(
    bill_id: int,
    format: str = Query("pdf", pattern="^(pdf|html)$"),
    template: Optional[InvoiceTemplate] = None,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = _load_bill(db, workspace, bill_id)
    business = get_business_settings(db, workspace.id)
    invoice = invoice_from_bill(bill)

    if format == "html":
        return HTMLResponse(generate_invoice_html(invoice, business, template))

    pdf = generate_invoice_pdf(invoice, business, template)
    headers = {"Content-Disposition": f'inline; filename="invoice_{bill.bill_number}.pdf"'}
    return Response(content=pdf, media_type="application/pdf", headers=headers)


@router.post("/{bill_id}/send-whatsapp", response_model=Envelope[dict])
def send_whatsapp(
    bill_id: int,
    data: WhatsAppSendRequest,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    bill = _load_bill(db, workspace, bill_id)
    config = get_whatsapp_settings(db, workspace.id)
    business = get_business_settings(db, workspace.id)

    phone = data.phone or crud.customer_phone(bill)
    message = data.message or whatsapp.default_invoice_message(bill, business)
    result = whatsapp.send_message(config, phone, message)
    logger.info(f"Bill {bill.bill_number} shared over WhatsApp ({result['method']}) with {result['phone']}")

    result["message"] = message
    text = "WhatsApp message sent" if result["sent"] else "Open the link to send the message on WhatsApp"
    return ok(result, text)
