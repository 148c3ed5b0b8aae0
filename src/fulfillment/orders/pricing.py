"""
Order pricing.

Totals are computed once, when the order is created, and never change:

    total = subtotal + shipping + tax - discount
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol, runtime_checkable

from fulfillment.exceptions import PricingError
from fulfillment.types import CENT, to_money

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class PriceBreakdown:
    """Monetary fields of an order."""

    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


@runtime_checkable
class PricingPolicy(Protocol):
    """Decides shipping and tax for an order."""

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        """Shipping charged for an order with this subtotal."""
        ...

    def tax_for(self, taxable: Decimal) -> Decimal:
        """Tax charged on the discounted subtotal."""
        ...


class FlatRatePricing:
    """
    A flat shipping fee and a single tax rate.

    Args:
        shipping_fee: Charged on every order
        tax_rate: Fraction applied to the discounted subtotal (0.08 = 8%)
        free_shipping_over: Subtotal from which shipping is free (optional)

    Example:
        >>> policy = FlatRatePricing(shipping_fee=Decimal("5.00"), tax_rate=Decimal("0.08"))
        >>> policy.tax_for(Decimal("90.00"))
        Decimal('7.20')
    """

    def __init__(
        self,
        shipping_fee: Decimal | int | str = ZERO,
        tax_rate: Decimal | int | str = ZERO,
        free_shipping_over: Decimal | int | str | None = None,
    ) -> None:
        self.shipping_fee = to_money(shipping_fee)
        self.tax_rate = Decimal(tax_rate)
        self.free_shipping_over = (
            to_money(free_shipping_over) if free_shipping_over is not None else None
        )
        if self.shipping_fee < 0:
            raise PricingError("shipping_fee must not be negative", self.shipping_fee)
        if self.tax_rate < 0:
            raise PricingError("tax_rate must not be negative", self.tax_rate)

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        if self.free_shipping_over is not None and subtotal >= self.free_shipping_over:
            return ZERO
        return self.shipping_fee

    def tax_for(self, taxable: Decimal) -> Decimal:
        return (taxable * self.tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(
    subtotal: Decimal,
    discount: Decimal,
    policy: PricingPolicy,
) -> PriceBreakdown:
    """
    Price an order.

    Raises:
        PricingError: If the discount exceeds the subtotal or the policy
            returns a negative amount
    """
    subtotal = to_money(subtotal)
    discount = to_money(discount)
    if discount < 0 or discount > subtotal:
        raise PricingError(f"discount {discount} outside [0, {subtotal}]", discount)

    shipping = to_money(policy.shipping_for(subtotal))
    tax = to_money(policy.tax_for(subtotal - discount))
    if shipping < 0 or tax < 0:
        raise PricingError(f"negative shipping ({shipping}) or tax ({tax})")

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax - discount,
    )


__all__ = ["FlatRatePricing", "PriceBreakdown", "PricingPolicy", "compute_totals"]
