"""Common type definitions for the fulfillment library."""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

# warehouse_id -> product_id -> quantity
WarehouseAvailability = dict[UUID, dict[UUID, int]]

CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Quantize a monetary value to two decimal places.

    Floats are rejected because they cannot represent cents exactly.

    Example:
        >>> to_money("10")
        Decimal('10.00')
        >>> to_money(Decimal("2.345"))
        Decimal('2.35')
    """
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
