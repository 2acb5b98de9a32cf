"""
Unit tests for tax, shipping and discount arithmetic.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from src.core.errors import BadRequestError
from src.db.base import utcnow
from src.services import pricing


class TestTaxAndShipping:
    """Test suite for rate tables and shipping options."""

    @pytest.mark.unit
    def test_us_state_rates(self) -> None:
        """Known states use their own rate; other states fall back to 5%."""
        assert pricing.get_tax_rate("US", "CA") == Decimal("0.0725")
        assert pricing.get_tax_rate("us", "ny") == Decimal("0.08875")
        assert pricing.get_tax_rate("US", "OR") == Decimal("0.05")
        assert pricing.get_tax_rate("US") == Decimal("0.05")

    @pytest.mark.unit
    def test_country_rates(self) -> None:
        """Countries outside the table are untaxed."""
        assert pricing.get_tax_rate("MY") == Decimal("0.10")
        assert pricing.get_tax_rate("SG") == Decimal("0.07")
        assert pricing.get_tax_rate("DE") == Decimal("0")

    @pytest.mark.unit
    def test_tax_includes_shipping_and_rounds_half_up(self) -> None:
        """Tax is charged on goods plus shipping, rounded to the nearest cent."""
        # (1000 + 599) * 0.0625 = 99.9375
        assert pricing.calculate_tax_cents(1000, 599, "US", "TX") == 100
        # 10 * 0.05 = 0.5 rounds up
        assert pricing.calculate_tax_cents(10, 0, "US", "WA") == 1

    @pytest.mark.unit
    def test_standard_shipping_free_over_threshold(self) -> None:
        """Standard shipping is free from the configured threshold upward."""
        assert pricing.shipping_cost_cents("standard", 7499) == 599
        assert pricing.shipping_cost_cents("standard", 7500) == 0

    @pytest.mark.unit
    def test_express_discounted_for_large_orders(self) -> None:
        assert pricing.shipping_cost_cents("express", 14999) == 1499
        assert pricing.shipping_cost_cents("express", 15000) == 999
        assert pricing.shipping_cost_cents("overnight", 50000) == 2999

    @pytest.mark.unit
    def test_unknown_shipping_method(self) -> None:
        with pytest.raises(BadRequestError, match="Unknown shipping method"):
            pricing.shipping_cost_cents("drone", 1000)

    @pytest.mark.unit
    def test_shipping_options_listed_in_order(self) -> None:
        options = pricing.shipping_options(1000)
        assert [o.id for o in options] == ["standard", "express", "overnight"]
        assert options[0].description == "Free on orders over $75"


class TestDiscounts:
    """Test suite for discount code validation and amounts."""

    @pytest.mark.unit
    def test_percentage_discount_respects_cap(self, db, make_discount) -> None:
        """Percentage codes are capped by max_discount_cents."""
        discount = make_discount(code="BIG20", type="PERCENTAGE", value=20, max_discount_cents=500)
        assert pricing.discount_amount_cents(discount, 10000, 0) == 500
        assert pricing.discount_amount_cents(discount, 1000, 0) == 200

    @pytest.mark.unit
    def test_fixed_discount_never_exceeds_order(self, db, make_discount) -> None:
        discount = make_discount(code="TENOFF", type="FIXED", value=1000)
        assert pricing.discount_amount_cents(discount, 5000, 599) == 1000
        assert pricing.discount_amount_cents(discount, 300, 100) == 400

    @pytest.mark.unit
    def test_shipping_discount_removes_shipping(self, db, make_discount) -> None:
        discount = make_discount(code="FREESHIP", type="SHIPPING", value=0)
        assert pricing.discount_amount_cents(discount, 5000, 599) == 599

    @pytest.mark.unit
    def test_codes_are_case_insensitive(self, db, make_discount) -> None:
        make_discount(code="SAVE10")
        assert pricing.validate_discount(db, "  save10 ", 1000).code == "SAVE10"

    @pytest.mark.unit
    def test_unknown_or_inactive_code(self, db, make_discount) -> None:
        make_discount(code="OLD", is_active=False)
        with pytest.raises(BadRequestError, match="Invalid discount code"):
            pricing.validate_discount(db, "NOPE", 1000)
        with pytest.raises(BadRequestError, match="Invalid discount code"):
            pricing.validate_discount(db, "OLD", 1000)

    @pytest.mark.unit
    def test_date_window(self, db, make_discount) -> None:
        now = utcnow()
        make_discount(code="SOON", starts_at=now + timedelta(days=1))
        make_discount(code="GONE", ends_at=now - timedelta(days=1))
        with pytest.raises(BadRequestError, match="not active yet"):
            pricing.validate_discount(db, "SOON", 1000, now=now)
        with pytest.raises(BadRequestError, match="expired"):
            pricing.validate_discount(db, "GONE", 1000, now=now)

    @pytest.mark.unit
    def test_usage_limit_and_minimum(self, db, make_discount) -> None:
        make_discount(code="ONCE", usage_limit=1, usage_count=1)
        make_discount(code="MIN50", min_order_cents=5000)
        with pytest.raises(BadRequestError, match="usage limit"):
            pricing.validate_discount(db, "ONCE", 1000)
        with pytest.raises(BadRequestError) as exc_info:
            pricing.validate_discount(db, "MIN50", 4999)
        assert exc_info.value.details == {"minOrderCents": 5000}

    @pytest.mark.unit
    def test_compute_totals(self, db, make_discount) -> None:
        """Total is subtotal + shipping + tax - discount."""
        make_discount(code="SAVE10", type="PERCENTAGE", value=10)
        totals = pricing.compute_totals(
            db, subtotal_cents=5000, shipping_method="standard", country="US", state="CA", discount_code="SAVE10"
        )
        assert totals.shipping_cents == 599
        assert totals.tax_cents == 406  # (5000 + 599) * 0.0725 = 405.93
        assert totals.discount_cents == 500
        assert totals.total_cents == 5000 + 599 + 406 - 500
