# fabricpos/routers/reports.py
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import pandas as pd
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from fabricpos.crud.bills import customer_label
from fabricpos.crud.products import low_stock_filter
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import (
    Bill, BillItem, BillStatus, Category, Customer, Payment, PaymentMethod, Product, UNTRACKED_TYPES,
)
from fabricpos.pagination import between_dates
from fabricpos.schemas.common import Envelope, ok
from fabricpos.security import Workspace, require_admin

router = APIRouter()

PERIOD_FREQ = {"day": "D", "week": "W", "month": "M", "year": "Y"}
DEFAULT_RANGE_DAYS = 30


def _money(value) -> float:
    return round(float(value or 0), 2)


def _growth(current, previous) -> float:
    """Percentage change; 100 when there was nothing to compare against."""
    current, previous = float(current or 0), float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def _date_range(date_from: Optional[date], date_to: Optional[date]) -> Tuple[date, date]:
    date_to = date_to or datetime.utcnow().date()
    date_from = date_from or date_to - timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if date_from > date_to:
        raise AppError.bad_request("date_from must be on or before date_to")
    return date_from, date_to


def _billed(db: Session, workspace: Workspace):
    return db.query(Bill).filter(Bill.organization_id == workspace.id, Bill.status != BillStatus.CANCELLED)


def _frame(rows, columns, money_columns=()) -> pd.DataFrame:
    df = pd.DataFrame([tuple(row) for row in rows], columns=columns)
    if df.empty:
        return df
    for column in money_columns:
        df[column] = df[column].astype(float)
    return df


def _sales_total(query) -> float:
    return _money(query.with_entities(func.coalesce(func.sum(Bill.final_amount), 0)).scalar())


def _item_rows(db: Session, bills):
    """Sold lines of the given bills with their product and category names."""
    return (
        db.query(
            BillItem.product_id,
            BillItem.custom_name,
            Product.sku,
            Category.name,
            BillItem.quantity,
            BillItem.total_price,
        )
        .outerjoin(Product, BillItem.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .filter(BillItem.bill_id.in_(bills.with_entities(Bill.id)))
        .all()
    )


def _top_items(items: pd.DataFrame, top: int, by: str = "revenue") -> list:
    if items.empty:
        return []
    grouped = (
        items.fillna({"product_id": 0, "sku": ""})
        .groupby(["product_id", "name", "sku"], as_index=False)
        .agg(quantity=("quantity", "sum"), revenue=("revenue", "sum"))
        .sort_values(by, ascending=False)
        .head(top)
    )
    return [
        {
            "product_id": int(row.product_id) or None,
            "name": row.name,
            "sku": row.sku or None,
            "quantity": round(float(row.quantity), 2),
            "revenue": round(float(row.revenue), 2),
        }
        for row in grouped.itertuples(index=False)
    ]


# ==========================================
# 1. Sales
# ==========================================
@router.get("/sales", response_model=Envelope[dict])
def sales_report(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    group_by: str = Query("day", pattern="^(day|week|month|year)$"),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    start, end = _date_range(date_from, date_to)
    bills = between_dates(_billed(db, workspace), Bill.created_at, start, end)
    df = _frame(bills.with_entities(Bill.id, Bill.created_at, Bill.final_amount).all(),
                ["id", "created_at", "final_amount"], money_columns=["final_amount"])

    # preceding period of the same length
    span = end - start
    previous_end = start - timedelta(days=1)
    previous_total = _sales_total(
        between_dates(_billed(db, workspace), Bill.created_at, previous_end - span, previous_end)
    )

    freq = PERIOD_FREQ[group_by]
    periods = pd.period_range(start=start.isoformat(), end=end.isoformat(), freq=freq)
    if df.empty:
        series = pd.DataFrame({"amount": 0.0, "bills": 0}, index=periods)
    else:
        df["period"] = pd.to_datetime(df["created_at"]).dt.to_period(freq)
        series = (
            df.groupby("period")
            .agg(amount=("final_amount", "sum"), bills=("id", "count"))
            .reindex(periods, fill_value=0)
        )

    total = float(df["final_amount"].sum()) if not df.empty else 0.0
    count = len(df)

    methods = {m.value: 0.0 for m in PaymentMethod}
    payments = between_dates(
        db.query(Payment.method, func.sum(Payment.amount))
        .join(Bill, Payment.bill_id == Bill.id)
        .filter(Bill.organization_id == workspace.id, Bill.status != BillStatus.CANCELLED),
        Payment.created_at, start, end,
    )
    for method, amount in payments.group_by(Payment.method).all():
        methods[method.value] = _money(amount)

    return ok({
        "period": {"from": start.isoformat(), "to": end.isoformat(), "group_by": group_by},
        "summary": {
            "total_sales": round(total, 2),
            "total_bills": count,
            "average_bill_value": round(total / count, 2) if count else 0.0,
            "previous_period_sales": previous_total,
            "growth": _growth(total, previous_total),
        },
        "series": [
            {
                "period": str(period),
                "start": period.start_time.date().isoformat(),
                "amount": round(float(row.amount), 2),
                "bills": int(row.bills),
            }
            for period, row in series.iterrows()
        ],
        "payment_methods": methods,
    })


# ==========================================
# 2. Inventory
# ==========================================
@router.get("/inventory", response_model=Envelope[dict])
def inventory_report(
    category_id: Optional[int] = None,
    low_stock: bool = False,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    query = (
        db.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.organization_id == workspace.id, Product.is_active == True)
    )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if low_stock:
        query = low_stock_filter(query)
    products = query.order_by(Product.name).all()

    df = pd.DataFrame([
        {
            "category": p.category.name if p.category else "Uncategorized",
            "tracked": p.tracks_stock,
            "stock": float(p.stock_quantity or 0),
            "min_stock": float(p.min_stock or 0),
            "cost": float(p.cost_price or 0),
        }
        for p in products
    ], columns=["category", "tracked", "stock", "min_stock", "cost"])
    df["value"] = df["stock"] * df["cost"]
    tracked = df[df["tracked"] == True]

    categories = []
    if not df.empty:
        grouped = df.groupby("category").agg(count=("stock", "size"), value=("value", "sum"))
        categories = [
            {"name": name, "count": int(row["count"]), "value": round(float(row["value"]), 2)}
            for name, row in grouped.iterrows()
        ]

    return ok({
        "summary": {
            "total_products": len(df),
            "total_value": round(float(tracked["value"].sum()), 2),
            "low_stock_items": int((tracked["stock"] <= tracked["min_stock"]).sum()),
            "out_of_stock_items": int((tracked["stock"] <= 0).sum()),
        },
        "categories": categories,
        "low_stock_products": [
            {
                "id": p.id,
                "name": p.name,
                "sku": p.sku,
                "current_stock": float(p.stock_quantity or 0),
                "min_stock": float(p.min_stock or 0),
            }
            for p in products if p.is_low_stock
        ],
    })


# ==========================================
# 3. Customers
# ==========================================
@router.get("/customers", response_model=Envelope[dict])
def customer_report(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    top: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    start, end = _date_range(date_from, date_to)
    customers = db.query(Customer).filter(Customer.organization_id == workspace.id, Customer.is_active == True)
    new_customers = between_dates(customers, Customer.created_at, start, end)

    bills = between_dates(_billed(db, workspace), Bill.created_at, start, end)
    df = _frame(bills.with_entities(Bill.customer_id, Bill.final_amount).all(),
                ["customer_id", "final_amount"], money_columns=["final_amount"])
    with_customer = df.dropna(subset=["customer_id"])

    top_customers = []
    if not with_customer.empty:
        spend = (
            with_customer.groupby("customer_id")
            .agg(total_spent=("final_amount", "sum"), orders=("final_amount", "size"))
            .sort_values("total_spent", ascending=False)
            .head(top)
        )
        ids = [int(i) for i in spend.index]
        names = {c.id: c for c in db.query(Customer).filter(Customer.id.in_(ids)).all()}
        top_customers = [
            {
                "customer_id": int(customer_id),
                "name": names[int(customer_id)].full_name if int(customer_id) in names else None,
                "phone": names[int(customer_id)].phone if int(customer_id) in names else None,
                "total_spent": round(float(row.total_spent), 2),
                "orders": int(row.orders),
            }
            for customer_id, row in spend.iterrows()
        ]

    joined = _frame(new_customers.with_entities(Customer.created_at).all(), ["created_at"])
    growth = []
    if not joined.empty:
        per_month = pd.to_datetime(joined["created_at"]).dt.to_period("M").value_counts().sort_index()
        growth = [{"month": str(month), "new_customers": int(n)} for month, n in per_month.items()]

    return ok({
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "summary": {
            "total_customers": customers.count(),
            "new_customers": new_customers.count(),
            "active_customers": int(with_customer["customer_id"].nunique()),
            "average_order_value": round(float(df["final_amount"].mean()), 2) if not df.empty else 0.0,
        },
        "top_customers": top_customers,
        "customer_growth": growth,
    })


# ==========================================
# 4. Product performance
# ==========================================
@router.get("/products/performance", response_model=Envelope[dict])
def product_performance(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    top: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    start, end = _date_range(date_from, date_to)
    bills = between_dates(_billed(db, workspace), Bill.created_at, start, end)
    items = _frame(_item_rows(db, bills), ["product_id", "name", "sku", "category", "quantity", "revenue"],
                   money_columns=["quantity", "revenue"])

    categories = []
    if not items.empty:
        per_category = (
            items.fillna({"category": "Uncategorized"})
            .groupby("category")
            .agg(sales=("quantity", "sum"), revenue=("revenue", "sum"))
            .sort_values("revenue", ascending=False)
        )
        categories = [
            {"category": name, "sales": round(float(row.sales), 2), "revenue": round(float(row.revenue), 2)}
            for name, row in per_category.iterrows()
        ]

    sold = items["name"].nunique() if not items.empty else 0
    revenue = float(items["revenue"].sum()) if not items.empty else 0.0
    total_products = (
        db.query(Product).filter(Product.organization_id == workspace.id, Product.is_active == True).count()
    )
    return ok({
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "summary": {
            "total_products": total_products,
            "products_sold": int(sold),
            "total_revenue": round(revenue, 2),
            "average_sales_per_product": round(revenue / sold, 2) if sold else 0.0,
        },
        "top_products": _top_items(items, top),
        "category_performance": categories,
    })


# ==========================================
# 5. Dashboard
# ==========================================
@router.get("/dashboard", response_model=Envelope[dict])
def dashboard(db: Session = Depends(get_db), workspace: Workspace = Depends(require_admin)):
    today = datetime.utcnow().date()
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    # same number of elapsed days in the previous month
    previous_start = (month_start - timedelta(days=1)).replace(day=1)
    previous_end = min(previous_start + (today - month_start), month_start - timedelta(days=1))

    this_month = _sales_total(between_dates(_billed(db, workspace), Bill.created_at, month_start, today))
    previous_month = _sales_total(
        between_dates(_billed(db, workspace), Bill.created_at, previous_start, previous_end)
    )

    customers = db.query(Customer).filter(Customer.organization_id == workspace.id, Customer.is_active == True)
    billed_this_month = between_dates(_billed(db, workspace), Bill.created_at, month_start, today)

    products = db.query(Product).filter(Product.organization_id == workspace.id, Product.is_active == True)
    tracked = products.filter(Product.type.notin_(UNTRACKED_TYPES))

    recent = (
        db.query(Bill)
        .options(joinedload(Bill.customer))
        .filter(Bill.organization_id == workspace.id)
        .order_by(Bill.created_at.desc(), Bill.id.desc())
        .limit(10)
        .all()
    )
    items = _frame(_item_rows(db, billed_this_month), ["product_id", "name", "sku", "category", "quantity", "revenue"],
                   money_columns=["quantity", "revenue"])

    return ok({
        "sales": {
            "today": _sales_total(between_dates(_billed(db, workspace), Bill.created_at, today, today)),
            "this_week": _sales_total(between_dates(_billed(db, workspace), Bill.created_at, week_start, today)),
            "this_month": this_month,
            "growth": _growth(this_month, previous_month),
        },
        "customers": {
            "total": customers.count(),
            "new": between_dates(customers, Customer.created_at, month_start, today).count(),
            "active": billed_this_month.filter(Bill.customer_id.isnot(None))
            .with_entities(func.count(func.distinct(Bill.customer_id))).scalar(),
        },
        "inventory": {
            "total_products": products.count(),
            "low_stock": low_stock_filter(products).count(),
            "out_of_stock": tracked.filter(Product.stock_quantity <= 0).count(),
        },
        "recent_activity": [
            {
                "type": "bill",
                "bill_id": bill.id,
                "description": f"Bill #{bill.bill_number} for {customer_label(bill)}",
                "amount": _money(bill.final_amount),
                "status": bill.status.value,
                "created_at": bill.created_at,
            }
            for bill in recent
        ],
        "top_products": _top_items(items, 5, by="quantity"),
    })
