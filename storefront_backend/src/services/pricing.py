"""
Tax, shipping and discount arithmetic.

All amounts are integer cents. Rates are kept as Decimal so half-cent results
round the same way on every platform.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import BadRequestError
from src.db.base import as_utc, utcnow
from src.db.models import Discount, DiscountType

DEFAULT_US_STATE_RATE = Decimal("0.05")

US_STATE_TAX_RATES: Dict[str, Decimal] = {
    "CA": Decimal("0.0725"),
    "NY": Decimal("0.08875"),
    "TX": Decimal("0.0625"),
    "FL": Decimal("0.06"),
}

COUNTRY_TAX_RATES: Dict[str, Decimal] = {
    "MY": Decimal("0.10"),
    "SG": Decimal("0.07"),
}

EXPRESS_DISCOUNT_THRESHOLD_CENTS = 15000


@dataclass(frozen=True)
class ShippingOption:
    id: str
    name: str
    description: str
    price_cents: int
    estimated_days: str


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_tax_rate(country: str, state: Optional[str] = None) -> Decimal:
    """Sales tax rate for a destination."""
    country = (country or "").upper()
    if country == "US":
        return US_STATE_TAX_RATES.get((state or "").upper(), DEFAULT_US_STATE_RATE)
    return COUNTRY_TAX_RATES.get(country, Decimal("0"))


def calculate_tax_cents(subtotal_cents: int, shipping_cents: int, country: str, state: Optional[str] = None) -> int:
    """Tax on goods plus shipping."""
    rate = get_tax_rate(country, state)
    return _round_cents(Decimal(subtotal_cents + shipping_cents) * rate)


def shipping_options(subtotal_cents: int) -> List[ShippingOption]:
    """Available shipping methods and their prices for a cart subtotal."""
    free_threshold = get_settings().free_shipping_threshold_cents
    standard_free = subtotal_cents >= free_threshold
    return [
        ShippingOption(
            id="standard",
            name="Standard Shipping",
            description="Free" if standard_free else f"Free on orders over ${free_threshold // 100}",
            price_cents=0 if standard_free else 599,
            estimated_days="5-7 business days",
        ),
        ShippingOption(
            id="express",
            name="Express Shipping",
            description="Faster delivery",
            price_cents=999 if subtotal_cents >= EXPRESS_DISCOUNT_THRESHOLD_CENTS else 1499,
            estimated_days="2-3 business days",
        ),
        ShippingOption(
            id="overnight",
            name="Overnight Shipping",
            description="Next business day",
            price_cents=2999,
            estimated_days="1 business day",
        ),
    ]


def shipping_cost_cents(method_id: str, subtotal_cents: int) -> int:
    for option in shipping_options(subtotal_cents):
        if option.id == method_id:
            return option.price_cents
    raise BadRequestError(f"Unknown shipping method: {method_id}")


def validate_discount(db: Session, code: str, subtotal_cents: int, now: Optional[datetime] = None) -> Discount:
    """Look up a discount code and check that it can be applied to this subtotal."""
    now = now or utcnow()
    normalized = code.strip().upper()
    discount = db.execute(select(Discount).where(Discount.code == normalized)).scalar_one_or_none()
    if discount is None or not discount.is_active:
        raise BadRequestError("Invalid discount code")

    starts_at = as_utc(discount.starts_at)
    ends_at = as_utc(discount.ends_at)
    if starts_at is not None and now < starts_at:
        raise BadRequestError("Discount code is not active yet")
    if ends_at is not None and now > ends_at:
        raise BadRequestError("Discount code has expired")
    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        raise BadRequestError("Discount code usage limit reached")
    if subtotal_cents < discount.min_order_cents:
        raise BadRequestError(
            f"Minimum order of ${discount.min_order_cents / 100:.2f} required for this code",
            details={"minOrderCents": discount.min_order_cents},
        )
    return discount


def discount_amount_cents(discount: Discount, subtotal_cents: int, shipping_cents: int) -> int:
    """Amount taken off an order by a validated discount."""
    if discount.type == DiscountType.PERCENTAGE.value:
        amount = _round_cents(Decimal(subtotal_cents) * Decimal(discount.value) / Decimal(100))
        if discount.max_discount_cents is not None:
            amount = min(amount, discount.max_discount_cents)
    elif discount.type == DiscountType.FIXED.value:
        amount = discount.value
    else:
        amount = shipping_cents
    return max(0, min(amount, subtotal_cents + shipping_cents))


# PUBLIC_INTERFACE
def compute_totals(
    db: Session,
    *,
    subtotal_cents: int,
    shipping_method: str,
    country: str,
    state: Optional[str] = None,
    discount_code: Optional[str] = None,
) -> Totals:
    """Subtotal, shipping, tax, discount and grand total for a prospective order."""
    shipping = shipping_cost_cents(shipping_method, subtotal_cents)
    tax = calculate_tax_cents(subtotal_cents, shipping, country, state)
    discount = 0
    if discount_code:
        discount = discount_amount_cents(validate_discount(db, discount_code, subtotal_cents), subtotal_cents, shipping)
    total = max(subtotal_cents + shipping + tax - discount, 0)
    return Totals(subtotal_cents, shipping, tax, discount, total)
