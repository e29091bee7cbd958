import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from fabricpos.crud.customers import get_customer
from fabricpos.crud.inventory import apply_stock_change, lock_product
from fabricpos.crud.settings import get_business_settings
from fabricpos.exceptions import AppError
from fabricpos.models import (
    Bill, BillItem, BillStatus, MovementType, Payment, PaymentStatus, User,
)
from fabricpos.schemas.bills import BillCreate, BillUpdate, PaymentCreate
from fabricpos.utils.bill_numbers import get_next_bill_number

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def payment_status_for(paid: Decimal, final: Decimal) -> PaymentStatus:
    if paid >= final:
        return PaymentStatus.COMPLETED
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def get_bill(db: Session, organization_id: int, bill_id: int) -> Bill:
    bill = db.query(Bill).filter(Bill.id == bill_id, Bill.organization_id == organization_id).first()
    if not bill:
        raise AppError.not_found("Bill")
    return bill


def _final_amount(total: Decimal, discount: Decimal, tax: Decimal) -> Decimal:
    if discount > total:
        raise AppError.bad_request("Discount cannot exceed the bill total")
    return money(total - discount + tax)


def create_bill(db: Session, organization_id: int, bill_in: BillCreate, user: User) -> Bill:
    """
    Builds the bill, its lines and the OUT movements in one transaction.
    Nothing is committed if any line fails (missing product, insufficient stock).
    """
    if bill_in.customer_id is not None:
        get_customer(db, organization_id, bill_in.customer_id)

    business = get_business_settings(db, organization_id)
    bill_number = get_next_bill_number(db, organization_id, business.invoice_prefix)

    lines = []
    stock_moves = []
    total = Decimal(0)

    for item in bill_in.items:
        product = None
        if item.product_id is not None:
            product = lock_product(db, organization_id, item.product_id)
            if not product.is_active:
                raise AppError.bad_request(f"Product {product.sku} is no longer sold")

        quantity = Decimal(str(item.quantity))
        unit_price = item.unit_price if item.unit_price is not None else product.selling_price
        tailoring_price = item.tailoring_price
        is_tailoring = item.is_tailoring or bool(product and product.is_tailoring and item.measurements)
        if is_tailoring and not tailoring_price and product is not None and product.tailoring_price:
            tailoring_price = product.tailoring_price

        line_total = money(quantity * Decimal(str(unit_price)) + Decimal(str(tailoring_price)) - item.discount_amount)
        if line_total < 0:
            raise AppError.bad_request(f"Discount on '{item.custom_name or product.name}' exceeds the line amount")

        lines.append(BillItem(
            product_id=product.id if product else None,
            custom_name=item.custom_name or product.name,
            description=item.description,
            quantity=quantity,
            unit=item.unit or (product.unit if product else "pcs"),
            unit_price=money(unit_price),
            discount_amount=money(item.discount_amount),
            tailoring_price=money(tailoring_price),
            total_price=line_total,
            is_tailoring=is_tailoring,
            measurements=item.measurements,
            notes=item.notes,
        ))
        total += line_total

        if product is not None and product.tracks_stock:
            stock_moves.append((product, quantity))

    total = money(total)
    discount = money(bill_in.discount_amount)
    tax = money(bill_in.tax_amount)
    final = _final_amount(total, discount, tax)

    amount_paid = money(bill_in.amount_paid)
    if amount_paid > final:
        raise AppError.bad_request("Amount paid cannot exceed the bill amount")

    bill = Bill(
        organization_id=organization_id,
        bill_number=bill_number,
        customer_id=bill_in.customer_id,
        status=BillStatus.DRAFT if bill_in.draft else BillStatus.ACTIVE,
        payment_method=bill_in.payment_method,
        payment_status=payment_status_for(amount_paid, final),
        total_amount=total,
        discount_amount=discount,
        tax_amount=tax,
        final_amount=final,
        paid_amount=amount_paid,
        delivery_date=bill_in.delivery_date,
        notes=bill_in.notes,
        created_by_id=user.id,
        items=lines,
    )
    db.add(bill)
    db.flush()

    for product, quantity in stock_moves:
        apply_stock_change(
            db, product, MovementType.OUT, quantity,
            user_id=user.id, reason="Sale", reference=bill.bill_number,
        )

    if amount_paid > 0:
        db.add(Payment(
            bill_id=bill.id,
            amount=amount_paid,
            method=bill_in.payment_method,
            status=PaymentStatus.COMPLETED,
            reference=bill_in.payment_reference,
            created_by_id=user.id,
        ))

    logger.info(f"Bill {bill.bill_number} created: final={final} paid={amount_paid} by user {user.id}")
    return bill


def update_bill(db: Session, organization_id: int, bill: Bill, bill_in: BillUpdate) -> Bill:
    if bill.status == BillStatus.CANCELLED:
        raise AppError.bad_request("Cancelled bills cannot be modified")

    update_data = bill_in.model_dump(exclude_unset=True)
    if update_data.get("customer_id") is not None:
        get_customer(db, organization_id, update_data["customer_id"])

    for field, value in update_data.items():
        if hasattr(bill, field):
            setattr(bill, field, value)

    if "discount_amount" in update_data or "tax_amount" in update_data:
        bill.final_amount = _final_amount(money(bill.total_amount), money(bill.discount_amount), money(bill.tax_amount))
        paid = money(bill.paid_amount)
        if paid > bill.final_amount:
            raise AppError.bad_request("The new amount is lower than what has already been paid")
        bill.payment_status = payment_status_for(paid, bill.final_amount)
    return bill


def cancel_bill(db: Session, bill: Bill, reason: str, user: User) -> Bill:
    if bill.status == BillStatus.CANCELLED:
        raise AppError.bad_request("Bill is already cancelled")

    for item in bill.items:
        if item.product_id is None or item.product is None or not item.product.tracks_stock:
            continue
        product = lock_product(db, bill.organization_id, item.product_id)
        apply_stock_change(
            db, product, MovementType.RETURN, item.quantity,
            user_id=user.id, reason="Bill cancelled", reference=bill.bill_number,
        )

    stamp = f"Cancelled: {reason} - {datetime.utcnow().isoformat()}"
    bill.notes = f"{bill.notes}\n{stamp}" if bill.notes else stamp
    bill.status = BillStatus.CANCELLED
    logger.info(f"Bill {bill.bill_number} cancelled by user {user.id}: {reason}")
    return bill


def add_payment(db: Session, bill: Bill, payment_in: PaymentCreate, user: User) -> Payment:
    if bill.status == BillStatus.CANCELLED:
        raise AppError.bad_request("Cannot add a payment to a cancelled bill")

    amount = money(payment_in.amount)
    outstanding = money(bill.final_amount) - money(bill.paid_amount)
    if amount > outstanding:
        raise AppError.bad_request(f"Payment exceeds the outstanding balance of {outstanding}")

    payment = Payment(
        bill_id=bill.id,
        amount=amount,
        method=payment_in.method,
        status=PaymentStatus.COMPLETED,
        reference=payment_in.reference,
        notes=payment_in.notes,
        created_by_id=user.id,
    )
    db.add(payment)

    bill.paid_amount = money(bill.paid_amount) + amount
    bill.payment_status = payment_status_for(bill.paid_amount, money(bill.final_amount))
    logger.info(f"Payment of {amount} recorded on bill {bill.bill_number}; status {bill.payment_status.value}")
    return payment


def customer_label(bill: Bill) -> str:
    return bill.customer.full_name if bill.customer else "Walk-in Customer"


def customer_phone(bill: Bill) -> Optional[str]:
    return bill.customer.phone if bill.customer else None
