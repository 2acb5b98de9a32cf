"""
Order creation and customer-facing order operations.

`create_order_from_checkout` is the single write path that turns a paid checkout
session into an order. The webhook handler and the success-page fallback both
call it; a second call for the same session returns the existing order.
"""

from __future__ import annotations

import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import BadRequestError, NotFoundError
from src.db.base import as_utc, utcnow
from src.db.models import (
    Cart,
    CheckoutSession,
    CheckoutSessionStatus,
    Discount,
    FulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    Shipping,
    User,
)
from src.integrations.analytics import AnalyticsClient
from src.integrations.email import EmailClient, order_confirmation
from src.integrations.stripe_client import StripeClient
from src.services import fulfillment
from src.services.inventory import decrement_stock, restock

logger = structlog.get_logger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

DELIVERY_DAYS = {"standard": 7, "express": 3, "overnight": 1}
REFUND_WINDOW_DAYS = 30


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number(prefix: str = "KP") -> str:
    """`KP-<base36 epoch ms>-<4 random base36 chars>`."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}-{stamp}-{suffix}"


def _find_by_session(db: Session, session_id: str) -> Optional[Order]:
    return db.execute(select(Order).where(Order.checkout_session_id == session_id)).scalar_one_or_none()


def _insert_order(
    db: Session,
    checkout: CheckoutSession,
    cart: Cart,
    payment_intent_id: Optional[str],
    payment_method: Optional[str],
) -> Order:
    now = utcnow()
    subtotal = sum(item.variant.price_cents * item.quantity for item in cart.items)
    total = max(subtotal + checkout.shipping_cents + checkout.tax_cents - checkout.discount_cents, 0)

    order = Order(
        order_number=generate_order_number(),
        user_id=checkout.user_id,
        checkout_session_id=checkout.id,
        status=OrderStatus.CONFIRMED.value,
        payment_status=PaymentStatus.COMPLETED.value,
        fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
        subtotal_cents=subtotal,
        shipping_cents=checkout.shipping_cents,
        tax_cents=checkout.tax_cents,
        discount_cents=checkout.discount_cents,
        total_cents=total,
        shipping_address=checkout.shipping_address,
        billing_address=checkout.billing_address,
        customer_email=checkout.email,
        customer_phone=(checkout.shipping_address or {}).get("phone"),
        shipping_method=checkout.shipping_method,
        discount_code=checkout.discount_code,
        notes=checkout.notes,
        confirmed_at=now,
    )
    db.add(order)

    for cart_item in cart.items:
        variant = cart_item.variant
        order.items.append(
            OrderItem(
                variant_id=variant.id,
                product_id=variant.product_id,
                product_name=variant.product.name,
                variant_name=variant.name,
                sku=variant.sku,
                quantity=cart_item.quantity,
                unit_price_cents=variant.price_cents,
                total_price_cents=variant.price_cents * cart_item.quantity,
            )
        )
        decrement_stock(db, variant.id, cart_item.quantity)

    order.payments.append(
        Payment(
            provider="stripe",
            stripe_payment_intent_id=payment_intent_id,
            amount_cents=checkout.total_cents,
            currency=order.currency,
            status=PaymentStatus.COMPLETED.value,
            payment_method=payment_method,
        )
    )
    order.shipping = Shipping(
        service=checkout.shipping_method,
        estimated_delivery=now + timedelta(days=DELIVERY_DAYS.get(checkout.shipping_method, 7)),
    )

    if checkout.discount_code:
        db.execute(
            update(Discount)
            .where(Discount.code == checkout.discount_code)
            .values(usage_count=Discount.usage_count + 1)
        )

    cart.items.clear()
    cart.discount_code = None

    checkout.status = CheckoutSessionStatus.COMPLETED.value
    checkout.completed_at = now
    if payment_intent_id:
        checkout.payment_intent_id = payment_intent_id
    return order


def _after_commit(
    db: Session,
    order: Order,
    email_client: Optional[EmailClient],
    analytics: Optional[AnalyticsClient],
) -> None:
    """Best-effort follow-ups. Failures are logged; the order stands."""
    try:
        fulfillment.create_dropship_order_for_order(db, order)
    except Exception as exc:
        db.rollback()
        logger.error("dropship_order_creation_failed", order_number=order.order_number, error=str(exc))

    if email_client is not None:
        try:
            email_client.send(order_confirmation(get_settings(), order))
        except Exception as exc:
            logger.error("order_confirmation_email_failed", order_number=order.order_number, error=str(exc))

    if analytics is not None:
        try:
            analytics.track_purchase(order)
        except Exception as exc:
            logger.error("purchase_event_failed", order_number=order.order_number, error=str(exc))


# PUBLIC_INTERFACE
def create_order_from_checkout(
    db: Session,
    session_id: str,
    *,
    payment_intent_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    email_client: Optional[EmailClient] = None,
    analytics: Optional[AnalyticsClient] = None,
) -> Tuple[Order, bool]:
    """
    Turn a paid checkout session into an order.

    Inserts the order, its items, payment and shipping rows, decrements stock and
    empties the cart in one transaction. Any failure rolls everything back.

    Returns:
        (order, created): created is False when the session already had an order.
    """
    existing = _find_by_session(db, session_id)
    if existing is not None:
        logger.info("order_already_exists", session_id=session_id, order_number=existing.order_number)
        return existing, False

    checkout = db.get(CheckoutSession, session_id)
    if checkout is None:
        raise NotFoundError("Checkout session")
    cart = checkout.cart
    if cart is None or not cart.items:
        raise BadRequestError("Cart is empty")

    try:
        order = _insert_order(db, checkout, cart, payment_intent_id, payment_method)
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_by_session(db, session_id)
        if existing is None:
            raise
        logger.info("order_created_concurrently", session_id=session_id, order_number=existing.order_number)
        return existing, False
    except Exception:
        db.rollback()
        logger.error("order_creation_failed", session_id=session_id, exc_info=True)
        raise

    logger.info(
        "order_created",
        order_number=order.order_number,
        session_id=session_id,
        total_cents=order.total_cents,
        item_count=len(order.items),
    )
    _after_commit(db, order, email_client, analytics)
    return order, True


def _owned_order(db: Session, order_number: str, user: User) -> Order:
    order = db.execute(
        select(Order).where(Order.order_number == order_number, Order.user_id == user.id)
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order")
    return order


def get_order(db: Session, order_number: str, user: User) -> Order:
    """Owners see their orders; staff see every order. Anyone else gets 404."""
    order = db.execute(select(Order).where(Order.order_number == order_number)).scalar_one_or_none()
    if order is None or (order.user_id != user.id and not user.is_staff):
        raise NotFoundError("Order")
    return order


def list_user_orders(
    db: Session, user: User, *, page: int = 1, page_size: int = 10, status: Optional[str] = None
) -> Dict[str, Any]:
    conditions = [Order.user_id == user.id]
    if status:
        conditions.append(Order.status == status)
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


# PUBLIC_INTERFACE
def cancel_order(db: Session, stripe_client: StripeClient, order_number: str, user: User) -> Order:
    """Cancel an unshipped order, restock its items and refund a completed payment."""
    order = _owned_order(db, order_number, user)
    if order.status in (OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value):
        raise BadRequestError("Cannot cancel an order that has been shipped or delivered")
    if order.status == OrderStatus.CANCELLED.value:
        raise BadRequestError("Order is already cancelled")

    try:
        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = utcnow()
        for item in order.items:
            restock(db, item.variant_id, item.quantity)

        payment = order.latest_payment
        if payment is not None and payment.status == PaymentStatus.COMPLETED.value and payment.stripe_payment_intent_id:
            stripe_client.create_refund(payment.stripe_payment_intent_id, reason="requested_by_customer")
            payment.status = PaymentStatus.REFUNDED.value
            payment.refunded_cents = payment.amount_cents
            order.payment_status = PaymentStatus.REFUNDED.value
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("order_cancelled", order_number=order_number, user_id=str(user.id))
    return order


def request_refund(db: Session, order_number: str, user: User, reason: str) -> Order:
    order = _owned_order(db, order_number, user)
    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value):
        raise BadRequestError("Order has already been cancelled or refunded")
    delivered_at = as_utc(order.delivered_at)
    if delivered_at is not None and utcnow() - delivered_at > timedelta(days=REFUND_WINDOW_DAYS):
        raise BadRequestError(f"Refund window of {REFUND_WINDOW_DAYS} days has expired")

    order.status = OrderStatus.REFUNDED.value
    note = f"Refund requested: {reason}"
    order.notes = f"{order.notes}\n\n{note}" if order.notes else note
    db.commit()
    logger.info("refund_requested", order_number=order_number, user_id=str(user.id))
    return order


def _timeline(order: Order) -> List[Dict[str, Any]]:
    events = [
        ("Order placed", "Your order has been received", order.created_at),
        ("Order confirmed", "Payment confirmed", order.confirmed_at),
        ("Shipped", "Your order is on its way", order.shipped_at),
        ("Delivered", "Your order has been delivered", order.delivered_at),
        ("Cancelled", "Your order was cancelled", order.cancelled_at),
    ]
    return [
        {"status": status, "description": description, "timestamp": as_utc(ts)}
        for status, description, ts in events
        if ts is not None
    ]


def track_order(db: Session, order_number: str, user: User) -> Dict[str, Any]:
    order = get_order(db, order_number, user)
    shipping = order.shipping
    return {
        "order_number": order.order_number,
        "status": order.status,
        "carrier": shipping.carrier if shipping else None,
        "tracking_number": shipping.tracking_number if shipping else None,
        "tracking_url": shipping.tracking_url if shipping else None,
        "estimated_delivery": as_utc(shipping.estimated_delivery) if shipping else None,
        "timeline": _timeline(order),
    }

