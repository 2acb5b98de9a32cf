"""
Dropship fulfillment.

Each customer order whose products have a supplier source gets a DropshipOrder.
Staff place it with the supplier by hand and move it through its states here;
shipment and delivery propagate to the customer order and its shipping row.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import BadRequestError, InvalidStatusTransitionError, NotFoundError
from src.db.base import as_utc, utcnow
from src.db.models import (
    DropshipOrder,
    DropshipOrderItem,
    DropshipStatus,
    FulfillmentStatus,
    Order,
    OrderStatus,
    ProductSource,
    ShippingStatus,
    SourceInventoryStatus,
    SourceStatus,
)
from src.integrations.email import EmailClient, fulfillment_issue_alert, shipping_update

logger = structlog.get_logger(__name__)

BASE_SHIPPING_CENTS = 299
PER_EXTRA_LINE_CENTS = 50
ATTENTION_AFTER = timedelta(hours=24)
MIN_ISSUE_LENGTH = 10

S = DropshipStatus

ALLOWED_TRANSITIONS: Dict[DropshipStatus, frozenset] = {
    S.PENDING: frozenset({S.PLACED, S.CANCELLED, S.ISSUE}),
    S.PLACED: frozenset({S.CONFIRMED, S.CANCELLED, S.ISSUE}),
    S.CONFIRMED: frozenset({S.SHIPPED, S.CANCELLED, S.ISSUE}),
    S.SHIPPED: frozenset({S.DELIVERED, S.ISSUE}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.ISSUE: frozenset({S.PENDING, S.PLACED, S.CONFIRMED, S.SHIPPED, S.CANCELLED}),
}


def can_transition(current: str, target: str) -> bool:
    return DropshipStatus(target) in ALLOWED_TRANSITIONS[DropshipStatus(current)]


def supplier_shipping_cents(line_count: int) -> int:
    if line_count <= 0:
        return 0
    return BASE_SHIPPING_CENTS + PER_EXTRA_LINE_CENTS * (line_count - 1)


def _get(db: Session, dropship_id: uuid.UUID) -> DropshipOrder:
    dropship = db.get(DropshipOrder, dropship_id)
    if dropship is None:
        raise NotFoundError("Fulfillment order")
    return dropship


def _require_status(dropship: DropshipOrder, target: DropshipStatus, *allowed: DropshipStatus) -> None:
    if DropshipStatus(dropship.status) not in allowed:
        raise InvalidStatusTransitionError(dropship.status, target.value)


def _notify(email_client: Optional[EmailClient], message: Any, event: str, **context: Any) -> None:
    if email_client is None:
        return
    try:
        email_client.send(message)
    except Exception as exc:
        logger.error(event, error=str(exc), **context)


def _source_for(db: Session, product_id: uuid.UUID, slug: str, cms_id: Optional[str]) -> Optional[ProductSource]:
    conditions = [ProductSource.product_id == product_id, ProductSource.product_slug == slug]
    if cms_id:
        conditions.append(ProductSource.cms_product_id == cms_id)
    return db.execute(select(ProductSource).where(or_(*conditions)).limit(1)).scalar_one_or_none()


# PUBLIC_INTERFACE
def create_dropship_order_for_order(db: Session, order: Order) -> Optional[DropshipOrder]:
    """Create the supplier-side order for every order line that has a product source."""
    lines: List[DropshipOrderItem] = []
    for item in order.items:
        product = item.product
        source = _source_for(db, product.id, product.slug, product.cms_id)
        if source is None:
            continue
        mapping = source.variant_mapping or {}
        supplier_sku = mapping.get(item.sku) or source.supplier_sku or item.sku
        lines.append(
            DropshipOrderItem(
                product_source_id=source.id,
                order_item_id=item.id,
                supplier_sku=supplier_sku,
                quantity=item.quantity,
                unit_cost_cents=source.original_price_cents,
                total_cost_cents=source.original_price_cents * item.quantity,
            )
        )

    if not lines:
        logger.info("no_dropship_items", order_number=order.order_number)
        return None

    shipping_cents = supplier_shipping_cents(len(lines))
    dropship = DropshipOrder(
        order_id=order.id,
        status=DropshipStatus.PENDING.value,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        shipping_address=order.shipping_address,
        shipping_cost_cents=shipping_cents,
        total_cost_cents=sum(line.total_cost_cents for line in lines) + shipping_cents,
        items=lines,
    )
    db.add(dropship)
    db.commit()
    logger.info(
        "dropship_order_created",
        order_number=order.order_number,
        dropship_order_id=str(dropship.id),
        item_count=len(lines),
        total_cost_cents=dropship.total_cost_cents,
    )
    return dropship


def list_fulfillment_orders(db: Session, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
    conditions = [DropshipOrder.status == status] if status else []
    total = db.execute(select(func.count()).select_from(DropshipOrder).where(*conditions)).scalar_one()
    orders = list(
        db.execute(
            select(DropshipOrder)
            .where(*conditions)
            .order_by(DropshipOrder.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars()
    )
    return {"orders": orders, "total": total, "limit": limit, "offset": offset}


def get_fulfillment_details(db: Session, dropship_id: uuid.UUID) -> DropshipOrder:
    return _get(db, dropship_id)


def update_status(db: Session, dropship_id: uuid.UUID, status: str) -> DropshipOrder:
    """Manual status change, restricted to ALLOWED_TRANSITIONS."""
    dropship = _get(db, dropship_id)
    try:
        target = DropshipStatus(status)
    except ValueError:
        raise BadRequestError(f"Unknown fulfillment status: {status}") from None
    if not can_transition(dropship.status, target.value):
        raise InvalidStatusTransitionError(dropship.status, target.value)
    previous = dropship.status
    dropship.status = target.value
    db.commit()
    logger.info("fulfillment_status_updated", dropship_order_id=str(dropship_id), previous=previous, status=target.value)
    return dropship


def add_tracking(
    db: Session, dropship_id: uuid.UUID, tracking_number: str, carrier: Optional[str] = None, tracking_url: Optional[str] = None
) -> DropshipOrder:
    if not tracking_number or not tracking_number.strip():
        raise BadRequestError("Tracking number is required")
    dropship = _get(db, dropship_id)
    dropship.tracking_number = tracking_number.strip()
    dropship.carrier = carrier
    dropship.tracking_url = tracking_url
    shipping = dropship.order.shipping
    if shipping is not None:
        shipping.tracking_number = dropship.tracking_number
        shipping.carrier = carrier
        shipping.tracking_url = tracking_url
    db.commit()
    logger.info("fulfillment_tracking_added", dropship_order_id=str(dropship_id), tracking_number=dropship.tracking_number)
    return dropship


def mark_placed(db: Session, dropship_id: uuid.UUID, supplier_order_id: str) -> DropshipOrder:
    if not supplier_order_id or not supplier_order_id.strip():
        raise BadRequestError("Supplier order id is required")
    dropship = _get(db, dropship_id)
    _require_status(dropship, DropshipStatus.PLACED, DropshipStatus.PENDING)

    now = utcnow()
    dropship.status = DropshipStatus.PLACED.value
    dropship.supplier_order_id = supplier_order_id.strip()
    dropship.placed_at = now

    suppliers = {item.product_source.supplier for item in dropship.items}
    for supplier in suppliers:
        supplier.total_orders += 1
        supplier.last_order_at = now

    order = dropship.order
    if order.status == OrderStatus.CONFIRMED.value:
        order.status = OrderStatus.PROCESSING.value
    db.commit()
    logger.info("fulfillment_placed", dropship_order_id=str(dropship_id), supplier_order_id=dropship.supplier_order_id)
    return dropship


def mark_shipped(
    db: Session,
    dropship_id: uuid.UUID,
    tracking_number: str,
    carrier: Optional[str] = None,
    tracking_url: Optional[str] = None,
    email_client: Optional[EmailClient] = None,
) -> DropshipOrder:
    if not tracking_number or not tracking_number.strip():
        raise BadRequestError("Tracking number is required")
    dropship = _get(db, dropship_id)
    _require_status(dropship, DropshipStatus.SHIPPED, DropshipStatus.PLACED, DropshipStatus.CONFIRMED)

    now = utcnow()
    dropship.status = DropshipStatus.SHIPPED.value
    dropship.tracking_number = tracking_number.strip()
    dropship.carrier = carrier
    dropship.tracking_url = tracking_url
    dropship.shipped_at = now

    order = dropship.order
    order.status = OrderStatus.SHIPPED.value
    order.shipped_at = now
    shipping = order.shipping
    if shipping is not None:
        shipping.status = ShippingStatus.SHIPPED.value
        shipping.tracking_number = dropship.tracking_number
        shipping.carrier = carrier
        shipping.tracking_url = tracking_url
        shipping.shipped_at = now
    db.commit()
    logger.info("fulfillment_shipped", dropship_order_id=str(dropship_id), order_number=order.order_number)

    _notify(
        email_client,
        shipping_update(get_settings(), order, dropship.tracking_number, carrier, tracking_url),
        "shipping_email_failed",
        order_number=order.order_number,
    )
    return dropship


def mark_delivered(db: Session, dropship_id: uuid.UUID) -> DropshipOrder:
    dropship = _get(db, dropship_id)
    _require_status(dropship, DropshipStatus.DELIVERED, DropshipStatus.SHIPPED)

    now = utcnow()
    dropship.status = DropshipStatus.DELIVERED.value
    dropship.delivered_at = now

    order = dropship.order
    order.status = OrderStatus.DELIVERED.value
    order.fulfillment_status = FulfillmentStatus.FULFILLED.value
    order.delivered_at = now
    if order.shipping is not None:
        order.shipping.status = ShippingStatus.DELIVERED.value
        order.shipping.delivered_at = now
    db.commit()
    logger.info("fulfillment_delivered", dropship_order_id=str(dropship_id), order_number=order.order_number)
    return dropship


def report_issue(db: Session, dropship_id: uuid.UUID, issue: str, email_client: Optional[EmailClient] = None) -> DropshipOrder:
    if not issue or len(issue.strip()) < MIN_ISSUE_LENGTH:
        raise BadRequestError(f"Issue description must be at least {MIN_ISSUE_LENGTH} characters")
    dropship = _get(db, dropship_id)
    dropship.status = DropshipStatus.ISSUE.value
    dropship.issue_note = issue.strip()
    db.commit()
    logger.warning("fulfillment_issue_reported", dropship_order_id=str(dropship_id), issue=dropship.issue_note)

    _notify(
        email_client,
        fulfillment_issue_alert(
            get_settings(),
            order_number=dropship.order.order_number,
            dropship_order_id=str(dropship.id),
            issue=dropship.issue_note,
        ),
        "issue_alert_email_failed",
        dropship_order_id=str(dropship_id),
    )
    return dropship


def fulfillment_stats(db: Session) -> Dict[str, int]:
    counts = dict(db.execute(select(DropshipOrder.status, func.count()).group_by(DropshipOrder.status)).all())
    stats = {status.value.lower(): int(counts.get(status.value, 0)) for status in DropshipStatus}
    stats["total"] = sum(stats.values())
    return stats


def validate_fulfillment(db: Session, dropship_id: uuid.UUID) -> Dict[str, Any]:
    dropship = db.get(DropshipOrder, dropship_id)
    if dropship is None:
        return {"valid": False, "errors": ["Fulfillment order not found"], "warnings": []}

    errors: List[str] = []
    warnings: List[str] = []

    if dropship.status == DropshipStatus.CANCELLED.value:
        errors.append("Order has been cancelled")
    if dropship.status == DropshipStatus.DELIVERED.value:
        errors.append("Order has already been delivered")
    if dropship.status == DropshipStatus.REFUNDED.value:
        errors.append("Order has been refunded")
    if not dropship.items:
        errors.append("Order has no items to fulfill")

    for item in dropship.items:
        source = item.product_source
        if source.source_status == SourceStatus.DISCONTINUED.value:
            errors.append(f"Product {source.product_slug} has been discontinued")
        if source.source_status == SourceStatus.UNAVAILABLE.value:
            warnings.append(f"Product {source.product_slug} may be unavailable from the supplier")
        if source.inventory_status == SourceInventoryStatus.OUT_OF_STOCK.value:
            warnings.append(f"Product {source.product_slug} is out of stock")
        if not item.supplier_sku and not source.supplier_sku:
            errors.append("Missing supplier SKU for item in order")

    address = dropship.shipping_address or {}
    if not all(address.get(key) for key in ("line1", "city", "state", "postal_code")):
        errors.append("Incomplete shipping address")
    if not dropship.customer_email:
        errors.append("Missing customer email")

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def fulfillment_history(db: Session, dropship_id: uuid.UUID) -> List[Dict[str, Any]]:
    dropship = _get(db, dropship_id)
    history: List[Dict[str, Any]] = [
        {"status": DropshipStatus.PENDING.value, "timestamp": as_utc(dropship.created_at), "note": "Order created"}
    ]
    if dropship.placed_at:
        note = f"Supplier order: {dropship.supplier_order_id}" if dropship.supplier_order_id else None
        history.append({"status": DropshipStatus.PLACED.value, "timestamp": as_utc(dropship.placed_at), "note": note})
    if dropship.shipped_at:
        note = f"Tracking: {dropship.tracking_number}" if dropship.tracking_number else None
        history.append({"status": DropshipStatus.SHIPPED.value, "timestamp": as_utc(dropship.shipped_at), "note": note})
    if dropship.delivered_at:
        history.append({"status": DropshipStatus.DELIVERED.value, "timestamp": as_utc(dropship.delivered_at), "note": None})
    return history


def orders_requiring_attention(db: Session, now=None) -> List[DropshipOrder]:
    """ISSUE orders, then PENDING orders older than 24 hours."""
    cutoff = (now or utcnow()) - ATTENTION_AFTER
    issues = list(
        db.execute(
            select(DropshipOrder)
            .where(DropshipOrder.status == DropshipStatus.ISSUE.value)
            .order_by(DropshipOrder.created_at)
        ).scalars()
    )
    stale = list(
        db.execute(
            select(DropshipOrder)
            .where(DropshipOrder.status == DropshipStatus.PENDING.value, DropshipOrder.created_at < cutoff)
            .order_by(DropshipOrder.created_at)
        ).scalars()
    )
    return [*issues, *stale]


def calculate_order_cost(db: Session, dropship_id: uuid.UUID) -> Dict[str, Any]:
    dropship = _get(db, dropship_id)
    return {
        "items_cost_cents": sum(item.total_cost_cents for item in dropship.items),
        "shipping_cost_cents": dropship.shipping_cost_cents,
        "total_cost_cents": dropship.total_cost_cents,
        "currency": "USD",
    }


def prepare_supplier_order(db: Session, dropship_id: uuid.UUID) -> Dict[str, Any]:
    """Everything staff need to place the order on the supplier's site."""
    dropship = _get(db, dropship_id)
    address = dropship.shipping_address or {}
    return {
        "order_number": dropship.order.order_number,
        "items": [
            {
                "supplier_product_id": item.product_source.supplier_product_id,
                "supplier_url": item.product_source.supplier_url,
                "supplier_sku": item.supplier_sku,
                "quantity": item.quantity,
                "unit_cost_cents": item.unit_cost_cents,
            }
            for item in dropship.items
        ],
        "shipping_address": {
            "name": " ".join(part for part in (address.get("first_name"), address.get("last_name")) if part),
            "line1": address.get("line1"),
            "line2": address.get("line2"),
            "city": address.get("city"),
            "state": address.get("state"),
            "postal_code": address.get("postal_code"),
            "country": address.get("country"),
            "phone": dropship.customer_phone or address.get("phone"),
        },
        "customer_email": dropship.customer_email,
        **calculate_order_cost(db, dropship_id),
    }
