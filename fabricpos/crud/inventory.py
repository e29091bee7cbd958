import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from fabricpos.exceptions import AppError
from fabricpos.models import InventoryMovement, MovementType, Product

logger = logging.getLogger(__name__)


def lock_product(db: Session, organization_id: int, product_id: int) -> Product:
    """Loads a product row FOR UPDATE so concurrent sales cannot oversell it."""
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.organization_id == organization_id)
        .with_for_update()
        .first()
    )
    if not product:
        raise AppError.not_found("Product")
    return product


def signed_quantity(movement_type: MovementType, quantity) -> Decimal:
    quantity = Decimal(str(quantity))
    if movement_type in (MovementType.IN, MovementType.RETURN):
        return abs(quantity)
    if movement_type == MovementType.OUT:
        return -abs(quantity)
    return quantity


def apply_stock_change(
    db: Session,
    product: Product,
    movement_type: MovementType,
    quantity,
    user_id: Optional[int] = None,
    reason: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> InventoryMovement:
    """
    The only place stock_quantity changes. Writes the movement with the before
    and after quantities and refuses to leave stock below zero. The caller commits.
    """
    if not product.tracks_stock:
        raise AppError.bad_request(f"{product.name} is a {product.type.value} product and does not track stock")

    delta = signed_quantity(movement_type, quantity)
    qty_before = Decimal(str(product.stock_quantity or 0))
    qty_after = qty_before + delta

    if qty_after < 0:
        raise AppError.bad_request(
            f"Insufficient stock for {product.sku}. Available: {qty_before}, requested: {abs(delta)}"
        )

    product.stock_quantity = qty_after

    movement = InventoryMovement(
        organization_id=product.organization_id,
        product_id=product.id,
        created_by_id=user_id,
        type=movement_type,
        quantity=delta,
        qty_before=qty_before,
        qty_after=qty_after,
        reason=reason,
        reference=reference,
        notes=notes,
    )
    db.add(movement)
    logger.debug(f"Stock {product.sku}: {qty_before} -> {qty_after} ({movement_type.value})")
    return movement


def current_stock_from_movements(db: Session, product_id: int) -> Decimal:
    """Recomputes stock from the movement ledger; used to audit the cached column."""
    movements = db.query(InventoryMovement.quantity).filter(InventoryMovement.product_id == product_id).all()
    return sum((Decimal(str(m.quantity)) for m in movements), Decimal(0))
