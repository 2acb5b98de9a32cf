"""
Stock bookkeeping for product variants.

Every write keeps `available == quantity - reserved_quantity`. Decrements are a
single conditional UPDATE so two concurrent orders cannot both take the last unit.
"""

from __future__ import annotations

import uuid
from typing import List

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.core.errors import InventoryError, NotFoundError, OutOfStockError
from src.db.models import Inventory, Variant

logger = structlog.get_logger(__name__)


def _expire_cached(db: Session, variant_id: uuid.UUID) -> None:
    # Bulk UPDATEs bypass the identity map; reload any Inventory already in the session.
    for obj in list(db.identity_map.values()):
        if isinstance(obj, Inventory) and obj.variant_id == variant_id:
            db.expire(obj)


def available_for(db: Session, variant_id: uuid.UUID) -> int:
    value = db.execute(select(Inventory.available).where(Inventory.variant_id == variant_id)).scalar_one_or_none()
    return value or 0


def _out_of_stock(db: Session, variant_id: uuid.UUID, qty: int) -> OutOfStockError:
    variant = db.get(Variant, variant_id)
    name = variant.product.name if variant is not None else "Item"
    return OutOfStockError(
        name,
        requested=qty,
        available=available_for(db, variant_id),
        product_id=str(variant.product_id) if variant is not None else None,
        variant_id=str(variant_id),
    )


# PUBLIC_INTERFACE
def decrement_stock(db: Session, variant_id: uuid.UUID, qty: int) -> None:
    """Remove `qty` sold units, failing if fewer than `qty` are available."""
    if qty <= 0:
        raise InventoryError("Quantity must be positive")
    result = db.execute(
        update(Inventory)
        .where(Inventory.variant_id == variant_id, Inventory.available >= qty)
        .values(quantity=Inventory.quantity - qty, available=Inventory.available - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("stock_decrement_rejected", variant_id=str(variant_id), requested=qty)
        raise _out_of_stock(db, variant_id, qty)
    _expire_cached(db, variant_id)
    logger.info("stock_decremented", variant_id=str(variant_id), quantity=qty)


# PUBLIC_INTERFACE
def restock(db: Session, variant_id: uuid.UUID, qty: int) -> None:
    """Return `qty` units to stock (cancellations)."""
    result = db.execute(
        update(Inventory)
        .where(Inventory.variant_id == variant_id)
        .values(quantity=Inventory.quantity + qty, available=Inventory.available + qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Inventory")
    _expire_cached(db, variant_id)
    logger.info("stock_restocked", variant_id=str(variant_id), quantity=qty)


def reserve(db: Session, variant_id: uuid.UUID, qty: int) -> None:
    """Hold `qty` units without selling them."""
    result = db.execute(
        update(Inventory)
        .where(Inventory.variant_id == variant_id, Inventory.available >= qty)
        .values(reserved_quantity=Inventory.reserved_quantity + qty, available=Inventory.available - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise _out_of_stock(db, variant_id, qty)
    _expire_cached(db, variant_id)


def release(db: Session, variant_id: uuid.UUID, qty: int) -> None:
    """Give back units previously held with `reserve`."""
    result = db.execute(
        update(Inventory)
        .where(Inventory.variant_id == variant_id, Inventory.reserved_quantity >= qty)
        .values(reserved_quantity=Inventory.reserved_quantity - qty, available=Inventory.available + qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InventoryError("Cannot release more units than are reserved")
    _expire_cached(db, variant_id)


def set_stock(db: Session, variant: Variant, quantity: int) -> Inventory:
    """Set on-hand quantity from an external source, keeping current reservations."""
    inventory = variant.inventory
    if inventory is None:
        inventory = Inventory(variant=variant, quantity=0, reserved_quantity=0, available=0)
        db.add(inventory)
    inventory.quantity = max(quantity, 0)
    inventory.available = max(inventory.quantity - inventory.reserved_quantity, 0)
    return inventory


def low_stock_variants(db: Session, limit: int = 20) -> List[Inventory]:
    stmt = (
        select(Inventory)
        .join(Inventory.variant)
        .where(Variant.is_active.is_(True), Inventory.available <= Inventory.low_stock_threshold)
        .order_by(Inventory.available.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
