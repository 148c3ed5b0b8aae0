"""
Order and shipment state machines.

Statuses only move along the edges listed here. Any other move raises
InvalidTransitionError before anything is written.
"""

from uuid import UUID

from fulfillment.exceptions import InvalidTransitionError
from fulfillment.models import Order, OrderStatus, Shipment, ShipmentStatus

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Orders in these states hold no stock and expect no further payment activity
PURGEABLE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

SHIPMENT_TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.SHIPPED}),
    ShipmentStatus.SHIPPED: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED}
    ),
    ShipmentStatus.IN_TRANSIT: frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED}),
    ShipmentStatus.DELIVERED: frozenset({ShipmentStatus.RETURNED}),
    ShipmentStatus.RETURNED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Whether an order may move from ``current`` to ``target``."""
    return target in ORDER_TRANSITIONS[current]


def _reject(entity: str, key: UUID, current: str, target: str) -> InvalidTransitionError:
    return InvalidTransitionError(entity, key, current, target)


def ensure_transition(order: Order, target: OrderStatus) -> None:
    """
    Raise unless ``order`` may move to ``target``.

    Raises:
        InvalidTransitionError: If the edge is not in ORDER_TRANSITIONS
    """
    if not can_transition(order.status, target):
        raise _reject("Order", order.id, order.status.value, target.value)


def ensure_shipment_transition(shipment: Shipment, target: ShipmentStatus) -> None:
    """
    Raise unless ``shipment`` may move to ``target``.

    Raises:
        InvalidTransitionError: If the edge is not in SHIPMENT_TRANSITIONS
    """
    if target not in SHIPMENT_TRANSITIONS[shipment.status]:
        raise _reject("Shipment", shipment.id, shipment.status.value, target.value)


__all__ = [
    "ORDER_TRANSITIONS",
    "PURGEABLE_STATUSES",
    "SHIPMENT_TRANSITIONS",
    "can_transition",
    "ensure_shipment_transition",
    "ensure_transition",
]
