"""
Tests for order pricing.
"""

from decimal import Decimal

import pytest

from fulfillment import FlatRatePricing, PricingError
from fulfillment.orders import PriceBreakdown, compute_totals


class TestFlatRatePricing:
    def test_defaults_are_free(self) -> None:
        policy = FlatRatePricing()
        assert policy.shipping_for(Decimal("10.00")) == Decimal("0.00")
        assert policy.tax_for(Decimal("10.00")) == Decimal("0.00")

    def test_tax_is_rounded_half_up(self) -> None:
        policy = FlatRatePricing(tax_rate=Decimal("0.075"))
        # 0.075 * 10.10 = 0.7575
        assert policy.tax_for(Decimal("10.10")) == Decimal("0.76")

    def test_free_shipping_threshold(self) -> None:
        policy = FlatRatePricing(shipping_fee="4.99", free_shipping_over="50")
        assert policy.shipping_for(Decimal("49.99")) == Decimal("4.99")
        assert policy.shipping_for(Decimal("50.00")) == Decimal("0.00")

    @pytest.mark.parametrize("kwargs", [{"shipping_fee": "-1"}, {"tax_rate": "-0.1"}])
    def test_negative_settings_rejected(self, kwargs: dict) -> None:
        with pytest.raises(PricingError):
            FlatRatePricing(**kwargs)


class TestComputeTotals:
    def test_total_formula(self) -> None:
        policy = FlatRatePricing(shipping_fee="5.00", tax_rate="0.10")

        totals = compute_totals(Decimal("100.00"), Decimal("10.00"), policy)

        assert totals == PriceBreakdown(
            subtotal=Decimal("100.00"),
            discount=Decimal("10.00"),
            shipping=Decimal("5.00"),
            tax=Decimal("9.00"),
            total=Decimal("104.00"),
        )
        assert totals.total == totals.subtotal + totals.shipping + totals.tax - totals.discount

    def test_full_discount(self) -> None:
        totals = compute_totals(Decimal("20.00"), Decimal("20.00"), FlatRatePricing())
        assert totals.total == Decimal("0.00")

    @pytest.mark.parametrize("discount", ["-0.01", "20.01"])
    def test_discount_outside_subtotal(self, discount: str) -> None:
        with pytest.raises(PricingError):
            compute_totals(Decimal("20.00"), Decimal(discount), FlatRatePricing())

    def test_negative_policy_output(self) -> None:
        class Broken:
            def shipping_for(self, subtotal: Decimal) -> Decimal:
                return Decimal("-1.00")

            def tax_for(self, taxable: Decimal) -> Decimal:
                return Decimal("0.00")

        with pytest.raises(PricingError):
            compute_totals(Decimal("20.00"), Decimal("0.00"), Broken())
