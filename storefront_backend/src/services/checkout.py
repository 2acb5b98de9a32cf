"""
Checkout session creation.

Totals are computed here, stored on a CheckoutSession row keyed by the Stripe
session id, and later turned into an order by src.services.orders once Stripe
reports the session as paid.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import BadRequestError, NotFoundError
from src.db.models import Cart, CheckoutSession, CheckoutSessionStatus, Order, User
from src.integrations.stripe_client import StripeClient
from src.services import pricing
from src.services.cart import check_stock, find_cart, subtotal_cents

logger = structlog.get_logger(__name__)


def _load_checkout_cart(db: Session, user: Optional[User], cart_session: Optional[str]) -> Cart:
    cart = find_cart(db, user, cart_session)
    if cart is None or not cart.items:
        raise BadRequestError("Cart is empty")
    for item in cart.items:
        variant = item.variant
        if not variant.is_active or not variant.product.is_active:
            raise BadRequestError(f"{variant.product.name} is no longer available")
        check_stock(db, variant, item.quantity)
    return cart


def _line_items(cart: Cart, totals: pricing.Totals, shipping_method: str) -> List[Dict[str, Any]]:
    lines: List[Dict[str, Any]] = []
    for item in cart.items:
        variant = item.variant
        lines.append(
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": variant.product.name,
                        "description": variant.name,
                        "metadata": {"variantId": str(variant.id), "sku": variant.sku},
                    },
                    "unit_amount": variant.price_cents,
                },
                "quantity": item.quantity,
            }
        )
    if totals.shipping_cents > 0:
        lines.append(
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {"name": f"Shipping ({shipping_method})"},
                    "unit_amount": totals.shipping_cents,
                },
                "quantity": 1,
            }
        )
    if totals.tax_cents > 0:
        lines.append(
            {
                "price_data": {"currency": "usd", "product_data": {"name": "Tax"}, "unit_amount": totals.tax_cents},
                "quantity": 1,
            }
        )
    return lines


# PUBLIC_INTERFACE
def create_checkout_session(
    db: Session,
    stripe_client: StripeClient,
    *,
    user: Optional[User],
    cart_session: Optional[str],
    email: str,
    shipping_address: Dict[str, Any],
    billing_address: Optional[Dict[str, Any]],
    shipping_method: str,
    discount_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> CheckoutSession:
    """Validate the cart, price it, open a Stripe Checkout session and record it."""
    settings = get_settings()
    cart = _load_checkout_cart(db, user, cart_session)

    code = discount_code or cart.discount_code
    totals = pricing.compute_totals(
        db,
        subtotal_cents=subtotal_cents(cart),
        shipping_method=shipping_method,
        country=shipping_address["country"],
        state=shipping_address.get("state"),
        discount_code=code,
    )

    discounts = None
    if totals.discount_cents > 0:
        coupon = stripe_client.create_coupon(totals.discount_cents)
        discounts = [{"coupon": coupon.id}]

    stripe_session = stripe_client.create_checkout_session(
        line_items=_line_items(cart, totals, shipping_method),
        customer_email=email,
        success_url=f"{settings.app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.app_url}/checkout?canceled=true",
        metadata={
            "cartId": str(cart.id),
            "userId": str(user.id) if user else "",
            "shippingMethodId": shipping_method,
        },
        discounts=discounts,
    )

    expires_at = None
    if getattr(stripe_session, "expires_at", None):
        expires_at = datetime.fromtimestamp(stripe_session.expires_at, tz=timezone.utc)

    checkout = CheckoutSession(
        id=stripe_session.id,
        cart_id=cart.id,
        user_id=user.id if user else None,
        email=email,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        shipping_method=shipping_method,
        discount_code=code.upper() if code and totals.discount_cents > 0 else None,
        notes=notes,
        url=stripe_session.url,
        expires_at=expires_at,
        **totals.as_dict(),
    )
    if not cart.email:
        cart.email = email
    db.add(checkout)
    db.commit()
    logger.info(
        "checkout_session_created",
        session_id=checkout.id,
        cart_id=str(cart.id),
        total_cents=totals.total_cents,
    )
    return checkout


def get_checkout_session(db: Session, session_id: str) -> Dict[str, Any]:
    checkout = db.get(CheckoutSession, session_id)
    if checkout is None:
        raise NotFoundError("Checkout session")
    order_number = db.execute(
        select(Order.order_number).where(Order.checkout_session_id == session_id)
    ).scalar_one_or_none()
    return {"session": checkout, "order_number": order_number}


def expire_checkout_session(db: Session, session_id: str) -> bool:
    checkout = db.get(CheckoutSession, session_id)
    if checkout is None or checkout.status != CheckoutSessionStatus.PENDING.value:
        return False
    checkout.status = CheckoutSessionStatus.EXPIRED.value
    db.commit()
    logger.info("checkout_session_expired", session_id=session_id)
    return True


def shipping_quote(
    db: Session,
    *,
    user: Optional[User],
    cart_session: Optional[str],
    country: str,
    state: Optional[str],
    shipping_method: str = "standard",
) -> Dict[str, Any]:
    cart = find_cart(db, user, cart_session)
    subtotal = subtotal_cents(cart) if cart is not None else 0
    totals = pricing.compute_totals(
        db,
        subtotal_cents=subtotal,
        shipping_method=shipping_method,
        country=country,
        state=state,
        discount_code=cart.discount_code if cart is not None else None,
    )
    return {
        "options": pricing.shipping_options(subtotal),
        "tax_rate": float(pricing.get_tax_rate(country, state)),
        "totals": totals.as_dict(),
    }
