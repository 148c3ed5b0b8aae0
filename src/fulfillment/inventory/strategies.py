"""
Warehouse selection strategies.

A strategy decides which warehouses an order item's quantity is reserved
from, given the stock currently available in each. Strategies are pure:
they never touch the store.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from fulfillment.exceptions import InsufficientStockError

Allocation = list[tuple[UUID, int]]
"""(warehouse_id, quantity) pairs, in reservation order."""


@runtime_checkable
class WarehouseSelectionStrategy(Protocol):
    """Chooses where to reserve stock for one order item."""

    def choose(
        self,
        product_id: UUID,
        quantity: int,
        available: dict[UUID, int],
    ) -> Allocation:
        """
        Split ``quantity`` over warehouses.

        Args:
            product_id: Product being reserved
            quantity: Units required (> 0)
            available: warehouse_id -> units available to reserve

        Returns:
            Allocation whose quantities sum to ``quantity``

        Raises:
            InsufficientStockError: If the strategy cannot place the quantity
        """
        ...


class FirstAvailableWarehouse:
    """
    Reserve everything from the first warehouse that can cover the quantity.

    Warehouses listed in ``preference`` are tried first, in that order; the
    rest follow in id order so the choice is deterministic.

    Example:
        >>> strategy = FirstAvailableWarehouse(preference=[dublin_id])
        >>> strategy.choose(product_id, 3, {dublin_id: 2, cork_id: 5})
        [(cork_id, 3)]
    """

    def __init__(self, preference: Sequence[UUID] = ()) -> None:
        self._preference = list(preference)

    def _ordered(self, available: dict[UUID, int]) -> list[UUID]:
        preferred = [w for w in self._preference if w in available]
        rest = sorted((w for w in available if w not in preferred), key=str)
        return preferred + rest

    def choose(
        self,
        product_id: UUID,
        quantity: int,
        available: dict[UUID, int],
    ) -> Allocation:
        for warehouse_id in self._ordered(available):
            if available[warehouse_id] >= quantity:
                return [(warehouse_id, quantity)]
        best = max(available.values(), default=0)
        raise InsufficientStockError(product_id, quantity, max(best, 0))


class SplitAcrossWarehouses:
    """
    Fill the quantity from several warehouses, most stocked first.

    Produces as few reservations as a greedy fill allows. Fails only when
    the total available across all warehouses is short.
    """

    def choose(
        self,
        product_id: UUID,
        quantity: int,
        available: dict[UUID, int],
    ) -> Allocation:
        total = sum(max(units, 0) for units in available.values())
        if total < quantity:
            raise InsufficientStockError(product_id, quantity, total)

        allocation: Allocation = []
        remaining = quantity
        for warehouse_id, units in sorted(available.items(), key=lambda kv: (-kv[1], str(kv[0]))):
            if remaining == 0:
                break
            take = min(units, remaining)
            if take > 0:
                allocation.append((warehouse_id, take))
                remaining -= take
        return allocation


__all__ = [
    "Allocation",
    "FirstAvailableWarehouse",
    "SplitAcrossWarehouses",
    "WarehouseSelectionStrategy",
]
