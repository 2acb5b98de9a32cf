"""Admin dashboard aggregates and order management."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from src.core.errors import BadRequestError, NotFoundError
from src.db.base import utcnow
from src.db.models import Order, OrderStatus, PaymentStatus
from src.services import fulfillment
from src.services.inventory import low_stock_variants

logger = structlog.get_logger(__name__)


def dashboard_stats(db: Session) -> Dict[str, Any]:
    status_counts = dict(db.execute(select(Order.status, func.count()).group_by(Order.status)).all())
    revenue = db.execute(
        select(func.coalesce(func.sum(Order.total_cents), 0)).where(
            Order.payment_status == PaymentStatus.COMPLETED.value
        )
    ).scalar_one()
    recent = db.execute(
        select(func.count()).select_from(Order).where(Order.created_at >= utcnow() - timedelta(days=30))
    ).scalar_one()

    low_stock = [
        {
            "variant_id": inv.variant_id,
            "sku": inv.variant.sku,
            "product_name": inv.variant.product.name,
            "variant_name": inv.variant.name,
            "available": inv.available,
            "threshold": inv.low_stock_threshold,
        }
        for inv in low_stock_variants(db)
    ]
    return {
        "orders_by_status": {status.value: int(status_counts.get(status.value, 0)) for status in OrderStatus},
        "total_orders": int(sum(status_counts.values())),
        "revenue_cents": int(revenue),
        "orders_last_30_days": int(recent),
        "low_stock": low_stock,
        "fulfillment": fulfillment.fulfillment_stats(db),
    }


def list_orders(
    db: Session, *, status: Optional[str] = None, q: Optional[str] = None, page: int = 1, page_size: int = 20
) -> Dict[str, Any]:
    conditions = []
    if status:
        conditions.append(Order.status == status)
    if q:
        pattern = f"%{q.lower()}%"
        conditions.append(or_(func.lower(Order.order_number).like(pattern), func.lower(Order.customer_email).like(pattern)))
    total = db.execute(select(func.count()).select_from(Order).where(*conditions)).scalar_one()
    orders = list(
        db.execute(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
    )
    return {"orders": orders, "total": total, "page": page, "page_size": page_size}


def update_order_status(db: Session, order_number: str, status: str) -> Order:
    try:
        target = OrderStatus(status)
    except ValueError:
        raise BadRequestError(f"Unknown order status: {status}") from None
    order = db.execute(select(Order).where(Order.order_number == order_number)).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order")

    previous = order.status
    order.status = target.value
    now = utcnow()
    if target is OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    elif target is OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now
    elif target is OrderStatus.CANCELLED and order.cancelled_at is None:
        order.cancelled_at = now
    db.commit()
    logger.info("order_status_overridden", order_number=order_number, previous=previous, status=target.value)
    return order
