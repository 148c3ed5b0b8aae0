"""
Shipment splitter.

Allocates the unshipped quantity of each order item to warehouses, one
shipment per warehouse. An item can only ship from a warehouse where its
stock is reserved, and never more than that reservation still holds, so
applying a plan always commits stock the order actually owns.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from uuid import UUID

from fulfillment.exceptions import ConsistencyViolation, UnallocatableItemError
from fulfillment.inventory import InventoryReservationManager
from fulfillment.models import (
    OrderItem,
    Reservation,
    ReservationState,
    Shipment,
    ShipmentItem,
    ShipmentStatus,
    utcnow,
)
from fulfillment.observability import (
    ATTR_ORDER_ID,
    ATTR_SHIPMENT_COUNT,
    Tracer,
    create_tracer,
)
from fulfillment.stores import LedgerTransaction
from fulfillment.types import WarehouseAvailability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShipmentLine:
    """Units of one order item drawn from one reservation."""

    order_item_id: UUID
    reservation_id: UUID
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class ShipmentInstruction:
    """A shipment to create: every line draws from the same warehouse."""

    warehouse_id: UUID
    lines: tuple[ShipmentLine, ...]

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class ShipmentPlan:
    """
    Result of an allocation.

    Attributes:
        order_id: Order being shipped
        shipments: One instruction per warehouse
        unallocated: order_item_id -> units left unshipped (partial plans only)
    """

    order_id: UUID
    shipments: tuple[ShipmentInstruction, ...]
    unallocated: dict[UUID, int] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.unallocated

    def allocated_for(self, order_item_id: UUID) -> int:
        """Units of an item covered by this plan."""
        return sum(
            line.quantity
            for shipment in self.shipments
            for line in shipment.lines
            if line.order_item_id == order_item_id
        )


class ShipmentSplitter:
    """
    Splits orders into per-warehouse shipments.

    ``plan`` is pure and can be used on its own. ``allocate`` gathers the
    order's items, reservations and earlier shipments from a transaction and
    plans the rest; ``apply`` writes the shipments and commits the stock.

    Example:
        >>> splitter = ShipmentSplitter(inventory)
        >>> async with store.transaction() as tx:
        ...     plan = await splitter.allocate(tx, order.id, {wh_a: {p: 2}, wh_b: {p: 3}})
        ...     shipments = await splitter.apply(tx, plan, carrier="DHL")
    """

    def __init__(
        self,
        inventory: InventoryReservationManager,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._inventory = inventory
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @staticmethod
    def plan(
        order_id: UUID,
        items: list[OrderItem],
        reservations: list[Reservation],
        *,
        shipped: dict[UUID, int] | None = None,
        availability: WarehouseAvailability | None = None,
        allow_partial: bool = False,
    ) -> ShipmentPlan:
        """
        Allocate every item's unshipped quantity to warehouses.

        Args:
            order_id: Order being shipped
            items: The order's items
            reservations: The order's reservations (only HELD ones are used)
            shipped: order_item_id -> units already shipped
            availability: warehouse_id -> product_id -> units that can leave
                now. None means every held reservation can ship in full.
            allow_partial: Ship what can be shipped instead of failing

        Raises:
            UnallocatableItemError: If an item cannot be fully covered and
                ``allow_partial`` is False
        """
        shipped = shipped or {}
        remaining: dict[UUID, dict[UUID, int]] | None = (
            {wh: dict(products) for wh, products in availability.items()}
            if availability is not None
            else None
        )

        held: dict[UUID, list[Reservation]] = defaultdict(list)
        for reservation in reservations:
            if reservation.state is ReservationState.HELD and reservation.outstanding > 0:
                held[reservation.order_item_id].append(reservation)

        buckets: dict[UUID, list[ShipmentLine]] = {}
        unallocated: dict[UUID, int] = {}

        for item in sorted(items, key=lambda i: (i.created_at, str(i.id))):
            need = item.quantity - shipped.get(item.id, 0)
            if need <= 0:
                continue
            wanted = need
            candidates = sorted(
                held.get(item.id, []), key=lambda r: (-r.outstanding, str(r.warehouse_id))
            )
            for reservation in candidates:
                if need == 0:
                    break
                cap = reservation.outstanding
                if remaining is not None:
                    in_warehouse = remaining.get(reservation.warehouse_id, {})
                    cap = min(cap, in_warehouse.get(item.product_id, 0))
                take = min(cap, need)
                if take <= 0:
                    continue
                buckets.setdefault(reservation.warehouse_id, []).append(
                    ShipmentLine(
                        order_item_id=item.id,
                        reservation_id=reservation.id,
                        product_id=item.product_id,
                        quantity=take,
                    )
                )
                if remaining is not None:
                    remaining[reservation.warehouse_id][item.product_id] -= take
                need -= take

            if need > 0:
                if not allow_partial:
                    raise UnallocatableItemError(item.id, wanted, wanted - need)
                unallocated[item.id] = need

        shipments = tuple(
            ShipmentInstruction(warehouse_id=wh, lines=tuple(lines))
            for wh, lines in buckets.items()
        )
        return ShipmentPlan(order_id=order_id, shipments=shipments, unallocated=unallocated)

    async def shipped_quantities(self, tx: LedgerTransaction, order_id: UUID) -> dict[UUID, int]:
        """order_item_id -> units already on a shipment."""
        totals: dict[UUID, int] = defaultdict(int)
        for shipment_item in await tx.select_for_update(ShipmentItem, order_id):
            totals[shipment_item.order_item_id] += shipment_item.quantity
        return dict(totals)

    async def allocate(
        self,
        tx: LedgerTransaction,
        order_id: UUID,
        availability: WarehouseAvailability | None = None,
        *,
        allow_partial: bool = False,
    ) -> ShipmentPlan:
        """Plan the unshipped remainder of an order from the state in ``tx``."""
        items = await tx.select(OrderItem, order_id)
        reservations = await tx.select_for_update(Reservation, order_id)
        shipped = await self.shipped_quantities(tx, order_id)
        return self.plan(
            order_id,
            items,
            reservations,
            shipped=shipped,
            availability=availability,
            allow_partial=allow_partial,
        )

    async def apply(
        self,
        tx: LedgerTransaction,
        plan: ShipmentPlan,
        *,
        carrier: str | None = None,
        tracking_numbers: dict[UUID, str] | None = None,
    ) -> list[Shipment]:
        """
        Create the planned shipments and commit their stock.

        Shipments are created SHIPPED: the goods leave the warehouse when
        the reservation is committed.

        Raises:
            ConsistencyViolation: If an item would ship more than it was ordered
        """
        with self._tracer.span(
            "fulfillment.shipments.apply",
            {ATTR_ORDER_ID: str(plan.order_id), ATTR_SHIPMENT_COUNT: len(plan.shipments)},
        ):
            items = {item.id: item for item in await tx.select(OrderItem, plan.order_id)}
            shipped = await self.shipped_quantities(tx, plan.order_id)
            now = utcnow()

            created: list[Shipment] = []
            for instruction in plan.shipments:
                shipment = tx.insert(
                    Shipment(
                        order_id=plan.order_id,
                        warehouse_id=instruction.warehouse_id,
                        status=ShipmentStatus.SHIPPED,
                        carrier=carrier,
                        tracking_number=(tracking_numbers or {}).get(instruction.warehouse_id),
                        shipped_at=now,
                    )
                )
                for line in instruction.lines:
                    item = items.get(line.order_item_id)
                    total = shipped.get(line.order_item_id, 0) + line.quantity
                    if item is None or total > item.quantity:
                        raise ConsistencyViolation(
                            f"Order item {line.order_item_id} would ship {total} unit(s)",
                            entity=OrderItem.entity_name(),
                            key=str(line.order_item_id),
                        )
                    shipped[line.order_item_id] = total
                    tx.insert(
                        ShipmentItem(
                            order_id=plan.order_id,
                            shipment_id=shipment.id,
                            order_item_id=line.order_item_id,
                            quantity=line.quantity,
                        )
                    )
                    await self._inventory.commit_reservation(tx, line.reservation_id, line.quantity)
                created.append(shipment)
                logger.debug(
                    "Shipment %s for order %s: %d unit(s) from warehouse %s",
                    shipment.id,
                    plan.order_id,
                    instruction.total_quantity,
                    instruction.warehouse_id,
                )
            return created


__all__ = [
    "ShipmentInstruction",
    "ShipmentLine",
    "ShipmentPlan",
    "ShipmentSplitter",
]
