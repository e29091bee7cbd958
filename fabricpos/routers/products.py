# fabricpos/routers/products.py
import io
import logging
import zipfile
from datetime import datetime
from typing import List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import Response, StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from fabricpos.crud import products as crud
from fabricpos.crud.settings import get_business_settings
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import Product, ProductType, UNTRACKED_TYPES
from fabricpos.pagination import Pagination, sanitize_query
from fabricpos.schemas.barcodes import BarcodeFormat
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.products import ImportResult, ProductCreate, ProductRead, ProductUpdate
from fabricpos.security import Workspace, check_include_inactive, get_workspace, require_admin
from fabricpos.utils import barcodes
from fabricpos.utils.pdf_generator import latin1

logger = logging.getLogger(__name__)

router = APIRouter()

PRODUCT_SORT_FIELDS = (
    "created_at", "updated_at", "name", "sku", "base_price", "selling_price", "stock_quantity", "type",
)
EXPORT_COLUMNS = [
    "sku", "name", "description", "category", "type", "unit", "base_price", "selling_price",
    "cost_price", "stock", "min_stock", "barcode",
]


# -----------------------------
# Helpers
# -----------------------------
def _products(db: Session, workspace: Workspace, include_inactive: bool = False):
    query = db.query(Product).options(joinedload(Product.category)).filter(Product.organization_id == workspace.id)
    return query if include_inactive else query.filter(Product.is_active == True)


def _export_rows(products: List[Product]) -> List[dict]:
    rows = []
    for p in products:
        rows.append({
            "sku": p.sku,
            "name": p.name,
            "description": p.description or "",
            "category": p.category.name if p.category else "",
            "type": p.type.value,
            "unit": p.unit,
            "base_price": float(p.base_price),
            "selling_price": float(p.selling_price),
            "cost_price": float(p.cost_price) if p.cost_price is not None else None,
            "stock": float(p.stock_quantity) if p.tracks_stock else None,
            "min_stock": float(p.min_stock or 0),
            "barcode": p.barcode or "",
        })
    return rows


# -----------------------------
# 1. List and lookups
# -----------------------------
@router.get("/", response_model=Envelope[Page[ProductRead]])
def read_products(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    type: Optional[ProductType] = None,
    is_tailoring: Optional[bool] = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = _products(db, workspace, check_include_inactive(workspace, include_inactive))
    search = sanitize_query(search)
    if search:
        query = crud.search_filter(query, search)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if type is not None:
        query = query.filter(Product.type == type)
    if is_tailoring is not None:
        query = query.filter(Product.is_tailoring == is_tailoring)
    if low_stock:
        query = crud.low_stock_filter(query)
    return ok(paging.paginate(query, Product, PRODUCT_SORT_FIELDS))


@router.get("/low-stock", response_model=Envelope[List[ProductRead]])
def read_low_stock(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    products = crud.low_stock_filter(_products(db, workspace)).order_by(Product.stock_quantity).all()
    return ok(products)


@router.get("/search/{q}", response_model=Envelope[List[ProductRead]])
def search_products(q: str, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    """Quick POS lookup by name, SKU, barcode or description."""
    term = sanitize_query(q)
    if not term:
        raise AppError.bad_request("Search term is required")
    products = crud.search_filter(_products(db, workspace), term).order_by(Product.name).limit(20).all()
    return ok(products)


@router.get("/barcode/{code}", response_model=Envelope[ProductRead])
def read_by_barcode(code: str, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(crud.get_product_by_barcode(db, workspace.id, code.strip()))


@router.get("/category/{category_id}", response_model=Envelope[List[ProductRead]])
def read_by_category(category_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    crud.get_category(db, workspace.id, category_id, active_only=False)
    products = _products(db, workspace).filter(Product.category_id == category_id).order_by(Product.name).all()
    return ok(products)


@router.get("/type/{product_type}", response_model=Envelope[List[ProductRead]])
def read_by_type(product_type: ProductType, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    products = _products(db, workspace).filter(Product.type == product_type).order_by(Product.name).all()
    return ok(products)


@router.get("/stats/overview", response_model=Envelope[dict])
def product_stats(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    base = db.query(Product).filter(Product.organization_id == workspace.id)
    active = base.filter(Product.is_active == True)
    tracked = active.filter(Product.type.notin_(UNTRACKED_TYPES))

    by_type = {t.value: 0 for t in ProductType}
    for product_type, count in (
        active.with_entities(Product.type, func.count(Product.id)).group_by(Product.type).all()
    ):
        by_type[product_type.value] = count

    value_cost, value_selling = tracked.with_entities(
        func.coalesce(func.sum(Product.stock_quantity * func.coalesce(Product.cost_price, 0)), 0),
        func.coalesce(func.sum(Product.stock_quantity * Product.selling_price), 0),
    ).one()

    return ok({
        "total": base.count(),
        "active": active.count(),
        "by_type": by_type,
        "low_stock": crud.low_stock_filter(active).count(),
        "out_of_stock": tracked.filter(Product.stock_quantity <= 0).count(),
        "stock_value_cost": round(float(value_cost), 2),
        "stock_value_selling": round(float(value_selling), 2),
    })


# -----------------------------
# 2. Export / Import (Excel, CSV)
# -----------------------------
@router.get("/export")
def export_products(
    format: str = Query("xlsx", pattern="^(xlsx|csv)$"),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    products = _products(db, workspace).order_by(Product.sku).all()
    df = pd.DataFrame(_export_rows(products), columns=EXPORT_COLUMNS)
    stamp = datetime.utcnow().strftime("%Y%m%d")

    if format == "csv":
        content = df.to_csv(index=False).encode("utf-8")
        headers = {"Content-Disposition": f'attachment; filename="products_{stamp}.csv"'}
        return Response(content=content, media_type="text/csv", headers=headers)

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Products")
    output.seek(0)

    headers = {"Content-Disposition": f'attachment; filename="products_{stamp}.xlsx"'}
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )


@router.post("/import", response_model=Envelope[ImportResult])
async def import_products(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    filename = (file.filename or "").lower()
    is_csv = filename.endswith(".csv")
    is_excel = filename.endswith((".xlsx", ".xlsm", ".xls"))
    if not (is_csv or is_excel):
        raise AppError.bad_request("Invalid file format. Upload an Excel or CSV file.")

    contents = await file.read()
    if not contents:
        raise AppError.bad_request("The uploaded file is empty")

    try:
        if is_csv:
            df = pd.read_csv(io.BytesIO(contents), dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(io.BytesIO(contents), engine="openpyxl", dtype=str)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise AppError.bad_request(f"Could not read the file: {e}")

    result = crud.import_products(db, workspace.id, df, workspace.user.id)
    db.commit()
    logger.info(
        f"Import into workspace {workspace.id}: {result['created']} created, "
        f"{result['updated']} updated, {result['failed']} failed"
    )
    return ok(result, "Import finished")


# -----------------------------
# 3. CRUD
# -----------------------------
@router.get("/{product_id}", response_model=Envelope[ProductRead])
def read_product(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(crud.get_product(db, workspace.id, product_id))


@router.post("/", response_model=Envelope[ProductRead], status_code=status.HTTP_201_CREATED)
def create_product(
    product_in: ProductCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    product = crud.create_product(db, workspace.id, product_in, workspace.user.id)
    db.commit()
    db.refresh(product)
    logger.info(f"Product {product.sku} created in workspace {workspace.id}")
    return ok(product, "Product created successfully")


@router.put("/{product_id}", response_model=Envelope[ProductRead])
def update_product(
    product_id: int,
    product_in: ProductUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    product = crud.get_product(db, workspace.id, product_id, active_only=False)
    crud.update_product(db, workspace.id, product, product_in)
    db.commit()
    db.refresh(product)
    return ok(product, "Product updated successfully")


@router.delete("/{product_id}", response_model=Envelope[None])
def delete_product(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(require_admin)):
    product = crud.get_product(db, workspace.id, product_id)
    product.is_active = False
    db.commit()
    return ok(None, "Product deleted successfully")


# -----------------------------
# 4. Barcodes and labels
# -----------------------------
@router.post("/{product_id}/regenerate-barcode", response_model=Envelope[ProductRead])
def regenerate_barcode(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(require_admin)):
    product = crud.get_product(db, workspace.id, product_id)
    code = barcodes.store_ean13(workspace.id, product.id)
    crud.ensure_unique_codes(db, workspace.id, barcode=code, exclude_id=product.id)
    product.barcode = code
    db.commit()
    db.refresh(product)
    return ok(product, "Barcode regenerated")


@router.get("/{product_id}/barcode")
def product_barcode(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    product = crud.get_product(db, workspace.id, product_id)
    png = barcodes.generate_png(product.barcode or product.sku, BarcodeFormat.CODE128)
    return Response(content=png, media_type="image/png")


@router.get("/{product_id}/label")
def product_label(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    product = crud.get_product(db, workspace.id, product_id)
    business = get_business_settings(db, workspace.id)
    png = barcodes.generate_label(
        product.barcode or product.sku,
        BarcodeFormat.CODE128,
        title=product.name,
        subtitle=f"SKU: {product.sku}",
        price=product.selling_price,
        currency_symbol=latin1(business.currency_symbol),
    )
    return Response(content=png, media_type="image/png")
