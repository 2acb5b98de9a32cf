"""
Shopping cart operations.

A cart belongs either to a signed-in user or to an anonymous session id. When a
user arrives with a session cart, its lines are merged into the user's cart.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.errors import BadRequestError, NotFoundError, OutOfStockError
from src.db.base import utcnow
from src.db.models import Cart, CartItem, User, Variant
from src.services import pricing
from src.services.inventory import available_for

logger = structlog.get_logger(__name__)

MAX_LINE_QUANTITY = 99


@dataclass
class CartSummary:
    cart_id: uuid.UUID
    items: List[Dict[str, Any]] = field(default_factory=list)
    item_count: int = 0
    subtotal_cents: int = 0
    discount_code: Optional[str] = None
    discount_cents: int = 0


def _touch(cart: Cart) -> None:
    cart.last_activity_at = utcnow()
    cart.abandonment_emails_sent = 0
    cart.last_abandonment_email_at = None


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def find_cart(db: Session, user: Optional[User], session_id: Optional[str]) -> Optional[Cart]:
    if user is not None:
        return db.execute(select(Cart).where(Cart.user_id == user.id)).scalar_one_or_none()
    if session_id:
        return db.execute(select(Cart).where(Cart.session_id == session_id)).scalar_one_or_none()
    return None


def _merge_guest_cart(db: Session, target: Cart, guest: Cart) -> None:
    existing = {item.variant_id: item for item in target.items}
    for item in list(guest.items):
        if item.variant_id in existing:
            existing[item.variant_id].quantity = min(existing[item.variant_id].quantity + item.quantity, MAX_LINE_QUANTITY)
        else:
            target.items.append(CartItem(variant_id=item.variant_id, quantity=item.quantity))
    if target.discount_code is None:
        target.discount_code = guest.discount_code
    db.delete(guest)
    logger.info("guest_cart_merged", cart_id=str(target.id), guest_cart_id=str(guest.id))


# PUBLIC_INTERFACE
def get_or_create_cart(db: Session, user: Optional[User], session_id: Optional[str]) -> Tuple[Cart, Optional[str]]:
    """
    Return the caller's cart, creating it when needed.

    Returns:
        (cart, session_id): session_id is set for guest carts so the caller can
        hand it back in the X-Cart-Session header.
    """
    if user is not None:
        cart = find_cart(db, user, None)
        if cart is None:
            cart = Cart(user_id=user.id, email=user.email)
            db.add(cart)
            db.commit()
        if session_id:
            guest = db.execute(select(Cart).where(Cart.session_id == session_id)).scalar_one_or_none()
            if guest is not None and guest.id != cart.id:
                _merge_guest_cart(db, cart, guest)
                db.commit()
        return cart, None

    cart = find_cart(db, None, session_id)
    if cart is None:
        session_id = session_id or new_session_id()
        cart = Cart(session_id=session_id)
        db.add(cart)
        db.commit()
    return cart, session_id


def _load_active_variant(db: Session, variant_id: uuid.UUID) -> Variant:
    variant = db.get(Variant, variant_id)
    if variant is None:
        raise NotFoundError("Product variant")
    if not variant.is_active or not variant.product.is_active:
        raise BadRequestError(f"{variant.product.name} is no longer available")
    return variant


def check_stock(db: Session, variant: Variant, quantity: int) -> None:
    available = available_for(db, variant.id)
    if quantity > available:
        raise OutOfStockError(
            variant.product.name,
            requested=quantity,
            available=available,
            product_id=str(variant.product_id),
            variant_id=str(variant.id),
        )


def add_item(db: Session, cart: Cart, variant_id: uuid.UUID, quantity: int) -> CartItem:
    if quantity < 1 or quantity > MAX_LINE_QUANTITY:
        raise BadRequestError(f"Quantity must be between 1 and {MAX_LINE_QUANTITY}")
    variant = _load_active_variant(db, variant_id)

    item = next((i for i in cart.items if i.variant_id == variant_id), None)
    new_quantity = quantity + (item.quantity if item else 0)
    if new_quantity > MAX_LINE_QUANTITY:
        raise BadRequestError(f"Quantity must be between 1 and {MAX_LINE_QUANTITY}")
    check_stock(db, variant, new_quantity)

    if item is None:
        item = CartItem(variant_id=variant_id, quantity=new_quantity)
        cart.items.append(item)
    else:
        item.quantity = new_quantity
    _touch(cart)
    db.commit()
    logger.info("cart_item_added", cart_id=str(cart.id), variant_id=str(variant_id), quantity=new_quantity)
    return item


def _get_item(cart: Cart, item_id: uuid.UUID) -> CartItem:
    item = next((i for i in cart.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Cart item")
    return item


def update_item(db: Session, cart: Cart, item_id: uuid.UUID, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity. Zero removes the line."""
    if quantity < 0 or quantity > MAX_LINE_QUANTITY:
        raise BadRequestError(f"Quantity must be between 0 and {MAX_LINE_QUANTITY}")
    item = _get_item(cart, item_id)
    if quantity == 0:
        cart.items.remove(item)
        _touch(cart)
        db.commit()
        return None
    check_stock(db, item.variant, quantity)
    item.quantity = quantity
    _touch(cart)
    db.commit()
    return item


def remove_item(db: Session, cart: Cart, item_id: uuid.UUID) -> None:
    item = _get_item(cart, item_id)
    cart.items.remove(item)
    _touch(cart)
    db.commit()


def clear_cart(db: Session, cart: Cart) -> None:
    cart.items.clear()
    cart.discount_code = None
    db.commit()


def subtotal_cents(cart: Cart) -> int:
    return sum(item.variant.price_cents * item.quantity for item in cart.items)


def apply_discount_code(db: Session, cart: Cart, code: str) -> int:
    """Validate and attach a discount code. Returns the discount at current cart value."""
    if not cart.items:
        raise BadRequestError("Cart is empty")
    subtotal = subtotal_cents(cart)
    discount = pricing.validate_discount(db, code, subtotal)
    cart.discount_code = discount.code
    db.commit()
    shipping = pricing.shipping_cost_cents("standard", subtotal)
    return pricing.discount_amount_cents(discount, subtotal, shipping)


def remove_discount_code(db: Session, cart: Cart) -> None:
    cart.discount_code = None
    db.commit()


def summarize(db: Session, cart: Cart) -> CartSummary:
    summary = CartSummary(cart_id=cart.id, discount_code=cart.discount_code)
    for item in cart.items:
        variant = item.variant
        line_total = variant.price_cents * item.quantity
        summary.items.append(
            {
                "id": item.id,
                "variant_id": variant.id,
                "product_id": variant.product_id,
                "product_name": variant.product.name,
                "product_slug": variant.product.slug,
                "variant_name": variant.name,
                "sku": variant.sku,
                "quantity": item.quantity,
                "unit_price_cents": variant.price_cents,
                "line_total_cents": line_total,
                "available": available_for(db, variant.id),
            }
        )
        summary.item_count += item.quantity
        summary.subtotal_cents += line_total

    if cart.discount_code and cart.items:
        try:
            discount = pricing.validate_discount(db, cart.discount_code, summary.subtotal_cents)
        except BadRequestError:
            # Code no longer applies (expired, below minimum); show zero rather than failing the cart.
            summary.discount_cents = 0
        else:
            shipping = pricing.shipping_cost_cents("standard", summary.subtotal_cents)
            summary.discount_cents = pricing.discount_amount_cents(discount, summary.subtotal_cents, shipping)
    return summary
