# fabricpos/routers/inventory.py
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from fabricpos.crud.inventory import apply_stock_change, lock_product
from fabricpos.crud.products import get_product
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import InventoryMovement, MovementType
from fabricpos.pagination import Pagination, between_dates
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.inventory import MovementCreate, MovementRead, StockInfo
from fabricpos.security import Workspace, get_workspace

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================
# 1. Kardex (movement history)
# =============================
@router.get("/", response_model=Envelope[Page[MovementRead]])
def read_movements(
    product_id: Optional[int] = None,
    type: Optional[MovementType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = (
        db.query(InventoryMovement)
        .options(joinedload(InventoryMovement.product))
        .filter(InventoryMovement.organization_id == workspace.id)
    )
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if type is not None:
        query = query.filter(InventoryMovement.type == type)
    query = between_dates(query, InventoryMovement.created_at, date_from, date_to)
    return ok(paging.paginate(query, InventoryMovement, ("created_at", "quantity", "type")))


# =============================
# 2. Register a movement
# =============================
@router.post("/", response_model=Envelope[MovementRead], status_code=status.HTTP_201_CREATED)
def create_movement(
    movement_in: MovementCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    product = lock_product(db, workspace.id, movement_in.product_id)
    if not product.is_active:
        raise AppError.bad_request("Cannot move stock of an inactive product")

    movement = apply_stock_change(
        db,
        product,
        movement_in.type,
        movement_in.quantity,
        user_id=workspace.user.id,
        reason=movement_in.reason,
        reference=movement_in.reference,
        notes=movement_in.notes,
    )
    db.commit()
    db.refresh(movement)
    logger.info(
        f"Inventory {movement.type.value} {movement.quantity} on {product.sku} "
        f"({movement.qty_before} -> {movement.qty_after}) by user {workspace.user.id}"
    )
    return ok(movement, "Inventory movement recorded")


# =============================
# 3. Stock of one product
# =============================
@router.get("/product/{product_id}/stock", response_model=Envelope[StockInfo])
def product_stock(product_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    product = get_product(db, workspace.id, product_id, active_only=False)
    recent = (
        db.query(InventoryMovement)
        .filter(InventoryMovement.product_id == product.id)
        .order_by(InventoryMovement.id.desc())
        .limit(10)
        .all()
    )
    return ok({
        "product": product,
        "stock_quantity": product.stock_quantity,
        "min_stock": product.min_stock,
        "max_stock": product.max_stock,
        "is_low_stock": product.is_low_stock,
        "recent_movements": recent,
    })


# =============================
# 4. Stats
# =============================
@router.get("/stats/overview", response_model=Envelope[dict])
def inventory_stats(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    base = db.query(InventoryMovement).filter(InventoryMovement.organization_id == workspace.id)

    by_type = {t.value: {"count": 0, "quantity": 0.0} for t in MovementType}
    for movement_type, count, quantity in (
        base.with_entities(InventoryMovement.type, func.count(InventoryMovement.id), func.sum(InventoryMovement.quantity))
        .group_by(InventoryMovement.type)
        .all()
    ):
        by_type[movement_type.value] = {"count": count, "quantity": round(float(quantity or 0), 2)}

    week_ago = datetime.utcnow() - timedelta(days=7)
    return ok({
        "total_movements": base.count(),
        "by_type": by_type,
        "last_7_days": base.filter(InventoryMovement.created_at >= week_ago).count(),
    })
