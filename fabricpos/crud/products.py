import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import pandas as pd
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fabricpos.crud.inventory import apply_stock_change
from fabricpos.exceptions import AppError
from fabricpos.models import Category, MovementType, Product, ProductType, UNTRACKED_TYPES
from fabricpos.schemas.products import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


# --- Categories ---
def get_category(db: Session, organization_id: int, category_id: int, active_only: bool = True) -> Category:
    query = db.query(Category).filter(Category.id == category_id, Category.organization_id == organization_id)
    if active_only:
        query = query.filter(Category.is_active == True)
    category = query.first()
    if not category:
        raise AppError.not_found("Category")
    return category


def ensure_category_name_free(db: Session, organization_id: int, name: str, exclude_id: int = None):
    existing = db.query(Category).filter(
        Category.organization_id == organization_id,
        func.lower(Category.name) == name.lower(),
    ).first()
    if existing and existing.id != exclude_id:
        raise AppError.conflict(f"Category '{name}' already exists")


def category_payload(db: Session, category: Category) -> dict:
    count = db.query(func.count(Product.id)).filter(
        Product.category_id == category.id, Product.is_active == True
    ).scalar()
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "is_active": category.is_active,
        "product_count": count or 0,
        "created_at": category.created_at,
    }


def deactivate_category(db: Session, category: Category) -> Category:
    in_use = db.query(func.count(Product.id)).filter(
        Product.category_id == category.id, Product.is_active == True
    ).scalar()
    if in_use:
        raise AppError.conflict(f"Category has {in_use} active products; move or delete them first")
    category.is_active = False
    return category


# --- Products ---
def get_product(db: Session, organization_id: int, product_id: int, active_only: bool = True) -> Product:
    query = db.query(Product).filter(Product.id == product_id, Product.organization_id == organization_id)
    if active_only:
        query = query.filter(Product.is_active == True)
    product = query.first()
    if not product:
        raise AppError.not_found("Product")
    return product


def get_product_by_barcode(db: Session, organization_id: int, barcode: str) -> Product:
    product = db.query(Product).filter(
        Product.organization_id == organization_id,
        Product.is_active == True,
        or_(Product.barcode == barcode, Product.sku == barcode),
    ).first()
    if not product:
        raise AppError.not_found("Product")
    return product


def ensure_unique_codes(db: Session, organization_id: int, sku: Optional[str] = None,
                        barcode: Optional[str] = None, exclude_id: int = None):
    if sku:
        existing = db.query(Product).filter(Product.organization_id == organization_id, Product.sku == sku).first()
        if existing and existing.id != exclude_id:
            raise AppError.conflict(f"A product with SKU '{sku}' already exists")
    if barcode:
        existing = db.query(Product).filter(
            Product.organization_id == organization_id, Product.barcode == barcode
        ).first()
        if existing and existing.id != exclude_id:
            raise AppError.conflict(f"A product with barcode '{barcode}' already exists")


def search_filter(query, term: str):
    like = f"%{term}%"
    return query.filter(or_(
        Product.name.ilike(like),
        Product.sku.ilike(like),
        Product.barcode.ilike(like),
        Product.description.ilike(like),
    ))


def low_stock_filter(query):
    return query.filter(
        Product.type.notin_(UNTRACKED_TYPES),
        Product.stock_quantity <= func.coalesce(Product.min_stock, 0),
    )


def create_product(db: Session, organization_id: int, product_in: ProductCreate, user_id: int) -> Product:
    barcode = product_in.barcode or product_in.sku
    ensure_unique_codes(db, organization_id, product_in.sku, barcode)
    if product_in.category_id is not None:
        get_category(db, organization_id, product_in.category_id)

    data = product_in.model_dump(exclude={"initial_stock", "barcode", "selling_price"})
    product = Product(
        organization_id=organization_id,
        barcode=barcode,
        selling_price=product_in.selling_price if product_in.selling_price is not None else product_in.base_price,
        stock_quantity=Decimal(0),
        is_active=True,
        **data,
    )
    db.add(product)
    db.flush()

    if product_in.initial_stock > 0:
        if product.type in UNTRACKED_TYPES:
            raise AppError.bad_request(f"{product.type.value} products do not carry stock")
        apply_stock_change(
            db, product, MovementType.IN, product_in.initial_stock,
            user_id=user_id, reason="Initial stock",
        )
    return product


def update_product(db: Session, organization_id: int, product: Product, product_in: ProductUpdate) -> Product:
    update_data = product_in.model_dump(exclude_unset=True)
    ensure_unique_codes(
        db, organization_id, update_data.get("sku"), update_data.get("barcode"), exclude_id=product.id
    )
    if update_data.get("category_id") is not None:
        get_category(db, organization_id, update_data["category_id"])

    new_type = update_data.get("type")
    if new_type in UNTRACKED_TYPES and product.stock_quantity and product.stock_quantity > 0:
        raise AppError.bad_request("Clear the remaining stock before turning this product into a service")

    for field, value in update_data.items():
        if hasattr(product, field):
            setattr(product, field, value)

    min_stock = product.min_stock or 0
    if product.max_stock is not None and product.max_stock < min_stock:
        raise AppError.bad_request("max_stock cannot be lower than min_stock")
    return product


# --- Bulk import (CSV / Excel) ---
def _safe_decimal(value, default=Decimal(0)):
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    text = str(value).strip()
    if not text:
        return default
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"'{text}' is not a number")


def _cell(row, key: str) -> str:
    value = row.get(key)
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def import_products(db: Session, organization_id: int, df: pd.DataFrame, user_id: int) -> dict:
    """Upserts products by SKU. Rows that fail are counted and reported, the rest are kept."""
    df.columns = [str(c).lower().strip().replace(" ", "_") for c in df.columns]
    if "sku" not in df.columns or "name" not in df.columns:
        raise AppError.bad_request("The file needs at least 'sku' and 'name' columns")

    category_map = {
        c.name.lower(): c
        for c in db.query(Category).filter(Category.organization_id == organization_id).all()
    }
    result = {"created": 0, "updated": 0, "failed": 0, "errors": []}

    for index, row in df.iterrows():
        line = index + 2  # header is row 1
        sku = _cell(row, "sku")
        if not sku:
            continue
        try:
            # Validate the whole row before touching the session
            product_type = ProductType(_cell(row, "type").upper() or ProductType.READY_MADE.value)
            base_price = _safe_decimal(row.get("base_price", row.get("price")))
            selling_price = _safe_decimal(row.get("selling_price"), base_price)
            cost_price = _safe_decimal(row.get("cost_price"), None)
            min_stock = _safe_decimal(row.get("min_stock"))
            stock = _safe_decimal(row.get("stock"), None)
            if base_price < 0 or selling_price < 0 or (stock is not None and stock < 0):
                raise ValueError("Prices and stock cannot be negative")

            product = db.query(Product).filter(
                Product.organization_id == organization_id, Product.sku == sku
            ).first()
            if product is None:
                barcode = _cell(row, "barcode") or sku
                ensure_unique_codes(db, organization_id, barcode=barcode)
            elif product_type in UNTRACKED_TYPES and product.stock_quantity and product.stock_quantity > 0:
                raise ValueError("Product still has stock and cannot become a service")
        except (AppError, ValueError) as exc:
            message = exc.message if isinstance(exc, AppError) else str(exc)
            result["failed"] += 1
            result["errors"].append(f"Row {line} ({sku}): {message}")
            logger.warning(f"Import row {line} failed: {message}")
            continue

        category = None
        category_name = _cell(row, "category")
        if category_name:
            category = category_map.get(category_name.lower())
            if category is None:
                category = Category(organization_id=organization_id, name=category_name)
                db.add(category)
                db.flush()
                category_map[category_name.lower()] = category
            elif not category.is_active:
                category.is_active = True

        if product:
            product.name = _cell(row, "name") or product.name
            product.type = product_type
            product.base_price = base_price
            product.selling_price = selling_price
            if cost_price is not None:
                product.cost_price = cost_price
            if category is not None:
                product.category_id = category.id
            product.is_active = True
            result["updated"] += 1
        else:
            product = Product(
                organization_id=organization_id,
                name=_cell(row, "name") or sku,
                description=_cell(row, "description") or None,
                sku=sku,
                barcode=barcode,
                category_id=category.id if category else None,
                type=product_type,
                unit=_cell(row, "unit") or "pcs",
                base_price=base_price,
                selling_price=selling_price,
                cost_price=cost_price,
                min_stock=min_stock,
                stock_quantity=Decimal(0),
                is_active=True,
            )
            db.add(product)
            db.flush()
            result["created"] += 1

        if stock is not None and product.tracks_stock:
            diff = stock - Decimal(str(product.stock_quantity or 0))
            if diff != 0:
                apply_stock_change(
                    db, product, MovementType.ADJUSTMENT, diff,
                    user_id=user_id, reason="Bulk import", reference="Spreadsheet upload",
                )

    return result
