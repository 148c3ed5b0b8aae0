"""
Inventory reservation manager.

Converts available stock into reserved stock for an order attempt, and
commits or releases those reservations as the order progresses.

Stock moves in three ways:

- reserve: ``reserved += n`` (stock pledged to an order)
- commit: ``quantity -= n`` and ``reserved -= n`` (stock left the warehouse)
- release: ``reserved -= n`` (pledge withdrawn)

``0 <= reserved <= quantity`` is checked on every mutation. A violation
raises ConsistencyViolation and is never clamped.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fulfillment.exceptions import (
    ConflictError,
    ConsistencyViolation,
    InsufficientStockError,
    ValidationError,
)
from fulfillment.inventory.strategies import FirstAvailableWarehouse, WarehouseSelectionStrategy
from fulfillment.models import InventoryRow, Reservation, ReservationState
from fulfillment.observability import (
    ATTR_ORDER_ID,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    ATTR_WAREHOUSE_ID,
    Tracer,
    create_tracer,
)
from fulfillment.stores import LedgerStore, LedgerTransaction

logger = logging.getLogger(__name__)


def _positive(quantity: int) -> int:
    if quantity <= 0:
        raise ValidationError(f"must be positive, got {quantity}", field="quantity")
    return quantity


def _checked(row: InventoryRow, *, quantity: int, reserved: int) -> InventoryRow:
    """Return ``row`` with new counts, refusing any that break the invariant."""
    if reserved < 0 or reserved > quantity:
        logger.error(
            "Inventory invariant violated for %s: quantity=%d reserved=%d",
            row.ledger_key(),
            quantity,
            reserved,
        )
        raise ConsistencyViolation(
            f"Inventory row {row.ledger_key()} would have quantity={quantity}, "
            f"reserved={reserved}",
            entity=InventoryRow.entity_name(),
            key=row.ledger_key(),
        )
    return row.evolve(quantity=quantity, reserved=reserved)


class InventoryReservationManager:
    """
    Reserves, commits and releases stock on top of a LedgerStore.

    Every method takes an optional ``tx``. When given, the work joins that
    transaction (so a whole checkout commits or rolls back together);
    otherwise it runs in its own transaction with conflict retries.

    Example:
        >>> manager = InventoryReservationManager(store)
        >>> await manager.restock(product_id, warehouse_id, 10)
        >>> await manager.reserve(product_id, warehouse_id, 6)
        >>> (await manager.get_row(product_id, warehouse_id)).available
        4
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        strategy: WarehouseSelectionStrategy | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._strategy = strategy or FirstAvailableWarehouse()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def strategy(self) -> WarehouseSelectionStrategy:
        return self._strategy

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_row(self, product_id: UUID, warehouse_id: UUID) -> InventoryRow | None:
        """Committed stock of a product in one warehouse."""
        return await self._store.get(InventoryRow, InventoryRow.key_for(product_id, warehouse_id))

    async def availability(
        self,
        product_id: UUID,
        *,
        tx: LedgerTransaction | None = None,
    ) -> dict[UUID, int]:
        """Units available to reserve per warehouse."""
        if tx is not None:
            rows = await tx.select(InventoryRow, product_id)
        else:
            rows = await self._store.list_partition(InventoryRow, product_id)
        return {row.warehouse_id: row.available for row in rows}

    # ------------------------------------------------------------------
    # Stock rows
    # ------------------------------------------------------------------

    async def restock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        *,
        tx: LedgerTransaction | None = None,
    ) -> InventoryRow:
        """Add physical stock, creating the row on first use."""
        _positive(quantity)

        async def work(tx: LedgerTransaction) -> InventoryRow:
            key = InventoryRow.key_for(product_id, warehouse_id)
            row = await tx.get_for_update(InventoryRow, key)
            if row is None:
                return tx.insert(
                    InventoryRow(
                        product_id=product_id, warehouse_id=warehouse_id, quantity=quantity
                    )
                )
            return tx.update(_checked(row, quantity=row.quantity + quantity, reserved=row.reserved))

        row = await self._store.in_transaction(tx, work, name="inventory.restock")
        logger.debug("Restocked %s by %d (quantity=%d)", row.ledger_key(), quantity, row.quantity)
        return row

    async def reserve(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        *,
        tx: LedgerTransaction | None = None,
    ) -> InventoryRow:
        """
        Pledge ``quantity`` units of one inventory row.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units are available
        """
        _positive(quantity)

        async def work(tx: LedgerTransaction) -> InventoryRow:
            return await self._reserve_row(tx, product_id, warehouse_id, quantity)

        with self._tracer.span(
            "fulfillment.inventory.reserve",
            {
                ATTR_PRODUCT_ID: str(product_id),
                ATTR_WAREHOUSE_ID: str(warehouse_id),
                ATTR_QUANTITY: quantity,
            },
        ):
            return await self._store.in_transaction(tx, work, name="inventory.reserve")

    async def commit(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        *,
        tx: LedgerTransaction | None = None,
    ) -> InventoryRow:
        """
        Remove ``quantity`` reserved units from the warehouse.

        Raises:
            ConsistencyViolation: If fewer than ``quantity`` units are reserved
        """
        _positive(quantity)

        async def work(tx: LedgerTransaction) -> InventoryRow:
            return await self._adjust(tx, product_id, warehouse_id, -quantity, -quantity)

        return await self._store.in_transaction(tx, work, name="inventory.commit")

    async def release(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        *,
        tx: LedgerTransaction | None = None,
    ) -> InventoryRow:
        """
        Return ``quantity`` reserved units to available stock.

        This adjusts the row only. To release what an order holds, use
        ``release_reservation`` or ``release_order``, which are idempotent.

        Raises:
            ConsistencyViolation: If fewer than ``quantity`` units are reserved
        """
        _positive(quantity)

        async def work(tx: LedgerTransaction) -> InventoryRow:
            return await self._adjust(tx, product_id, warehouse_id, 0, -quantity)

        return await self._store.in_transaction(tx, work, name="inventory.release")

    async def _reserve_row(
        self,
        tx: LedgerTransaction,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        seen_version: int | None = None,
    ) -> InventoryRow:
        key = InventoryRow.key_for(product_id, warehouse_id)
        row = await tx.get_for_update(InventoryRow, key)
        if row is not None and seen_version is not None and row.version != seen_version:
            # The allocation was planned on a stale scan; re-plan from fresh state.
            raise ConflictError(InventoryRow.entity_name(), key, seen_version, row.version)
        available = row.available if row else 0
        if row is None or available < quantity:
            raise InsufficientStockError(product_id, quantity, max(available, 0), warehouse_id)
        updated = tx.update(_checked(row, quantity=row.quantity, reserved=row.reserved + quantity))
        logger.debug("Reserved %d of %s (reserved=%d)", quantity, key, updated.reserved)
        return updated

    async def _adjust(
        self,
        tx: LedgerTransaction,
        product_id: UUID,
        warehouse_id: UUID,
        quantity_delta: int,
        reserved_delta: int,
    ) -> InventoryRow:
        row = await tx.require(
            InventoryRow, InventoryRow.key_for(product_id, warehouse_id), for_update=True
        )
        updated = tx.update(
            _checked(
                row,
                quantity=row.quantity + quantity_delta,
                reserved=row.reserved + reserved_delta,
            )
        )
        logger.debug(
            "Adjusted %s by quantity %+d, reserved %+d",
            row.ledger_key(),
            quantity_delta,
            reserved_delta,
        )
        return updated

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    async def reserve_item(
        self,
        tx: LedgerTransaction,
        *,
        order_id: UUID,
        order_item_id: UUID,
        product_id: UUID,
        quantity: int,
        strategy: WarehouseSelectionStrategy | None = None,
    ) -> list[Reservation]:
        """
        Reserve stock for one order item and record where it came from.

        The warehouse split is decided by the strategy from the availability
        seen in ``tx``; each chosen row is then reserved with a version check,
        so a concurrent reservation makes the transaction conflict and retry.

        Returns:
            One HELD Reservation per warehouse used

        Raises:
            InsufficientStockError: If the stock cannot be placed
        """
        _positive(quantity)
        rows = await tx.select_for_update(InventoryRow, product_id)
        available = {row.warehouse_id: row.available for row in rows}
        seen = {row.warehouse_id: row.version for row in rows}
        allocation = (strategy or self._strategy).choose(product_id, quantity, available)

        reservations: list[Reservation] = []
        for warehouse_id, units in allocation:
            await self._reserve_row(tx, product_id, warehouse_id, units, seen.get(warehouse_id))
            reservations.append(
                tx.insert(
                    Reservation(
                        order_id=order_id,
                        order_item_id=order_item_id,
                        product_id=product_id,
                        warehouse_id=warehouse_id,
                        quantity=units,
                    )
                )
            )
        return reservations

    async def commit_reservation(
        self,
        tx: LedgerTransaction,
        reservation_id: UUID,
        quantity: int,
    ) -> Reservation:
        """
        Commit part or all of a held reservation.

        The reservation becomes COMMITTED once its whole quantity is committed.

        Raises:
            ConsistencyViolation: If ``quantity`` exceeds what is still held
        """
        _positive(quantity)
        current = await tx.require(Reservation, reservation_id, for_update=True)
        if quantity > current.outstanding:
            raise ConsistencyViolation(
                f"Reservation {current.id} holds {current.outstanding} unit(s), "
                f"cannot commit {quantity}",
                entity=Reservation.entity_name(),
                key=str(current.id),
            )

        await self._adjust(tx, current.product_id, current.warehouse_id, -quantity, -quantity)
        committed = current.committed_quantity + quantity
        state = (
            ReservationState.COMMITTED if committed == current.quantity else ReservationState.HELD
        )
        return tx.update(current.evolve(committed_quantity=committed, state=state))

    async def release_reservation(
        self,
        reservation_id: UUID,
        *,
        tx: LedgerTransaction | None = None,
    ) -> Reservation:
        """
        Give back whatever a reservation still holds.

        Idempotent: a reservation that is already RELEASED or COMMITTED is
        returned unchanged and the inventory row is not touched.
        """

        async def work(tx: LedgerTransaction) -> Reservation:
            current = await tx.require(Reservation, reservation_id, for_update=True)
            if current.state is not ReservationState.HELD:
                logger.debug("Reservation %s already %s", current.id, current.state.value)
                return current
            outstanding = current.outstanding
            if outstanding > 0:
                await self._adjust(tx, current.product_id, current.warehouse_id, 0, -outstanding)
            return tx.update(current.evolve(state=ReservationState.RELEASED))

        return await self._store.in_transaction(tx, work, name="inventory.release_reservation")

    async def release_item(
        self,
        order_id: UUID,
        order_item_id: UUID,
        *,
        tx: LedgerTransaction | None = None,
    ) -> int:
        """Release every held reservation of one order item. Returns units released."""

        async def work(tx: LedgerTransaction) -> int:
            held = await tx.select_for_update(
                Reservation,
                order_id,
                lambda r: r.order_item_id == order_item_id and r.state is ReservationState.HELD,
            )
            released = 0
            for reservation in held:
                released += reservation.outstanding
                await self.release_reservation(reservation.id, tx=tx)
            return released

        return await self._store.in_transaction(tx, work, name="inventory.release_item")

    async def release_order(
        self,
        order_id: UUID,
        *,
        tx: LedgerTransaction | None = None,
    ) -> int:
        """
        Release every held reservation of an order. Returns units released.

        Safe to call repeatedly: the second call finds nothing HELD.
        """

        async def work(tx: LedgerTransaction) -> int:
            held = await tx.select_for_update(
                Reservation, order_id, lambda r: r.state is ReservationState.HELD
            )
            released = 0
            for reservation in held:
                released += reservation.outstanding
                await self.release_reservation(reservation.id, tx=tx)
            return released

        with self._tracer.span(
            "fulfillment.inventory.release_order", {ATTR_ORDER_ID: str(order_id)}
        ):
            released = await self._store.in_transaction(tx, work, name="inventory.release_order")
        if released:
            logger.debug("Released %d unit(s) held for order %s", released, order_id)
        return released


__all__ = ["InventoryReservationManager"]
