"""
Tests for the order and shipment state machines.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment import (
    InvalidTransitionError,
    Order,
    OrderStatus,
    Shipment,
    ShipmentStatus,
)
from fulfillment.orders import (
    ORDER_TRANSITIONS,
    can_transition,
    ensure_shipment_transition,
    ensure_transition,
)


def _order(status: OrderStatus) -> Order:
    return Order(
        user_id=uuid4(),
        order_number="ORD-20300101-0001",
        status=status,
        subtotal=Decimal("10.00"),
        total_amount=Decimal("10.00"),
    )


ALLOWED = {
    (OrderStatus.PENDING, OrderStatus.PROCESSING),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    (OrderStatus.PROCESSING, OrderStatus.REFUNDED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    (OrderStatus.CANCELLED, OrderStatus.REFUNDED),
}


@pytest.mark.parametrize("current", list(OrderStatus))
@pytest.mark.parametrize("target", list(OrderStatus))
def test_order_transition_table(current: OrderStatus, target: OrderStatus) -> None:
    expected = (current, target) in ALLOWED
    assert can_transition(current, target) is expected

    if expected:
        ensure_transition(_order(current), target)
    else:
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition(_order(current), target)
        assert exc_info.value.current == current.value
        assert exc_info.value.requested == target.value


def test_every_status_has_an_entry() -> None:
    assert set(ORDER_TRANSITIONS) == set(OrderStatus)


def test_terminal_states() -> None:
    assert ORDER_TRANSITIONS[OrderStatus.DELIVERED] == frozenset()
    assert ORDER_TRANSITIONS[OrderStatus.REFUNDED] == frozenset()


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (ShipmentStatus.PENDING, ShipmentStatus.SHIPPED, True),
        (ShipmentStatus.SHIPPED, ShipmentStatus.IN_TRANSIT, True),
        (ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED, True),
        (ShipmentStatus.SHIPPED, ShipmentStatus.DELIVERED, True),
        (ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED, True),
        (ShipmentStatus.PENDING, ShipmentStatus.DELIVERED, False),
        (ShipmentStatus.DELIVERED, ShipmentStatus.SHIPPED, False),
        (ShipmentStatus.RETURNED, ShipmentStatus.SHIPPED, False),
    ],
)
def test_shipment_transitions(
    current: ShipmentStatus, target: ShipmentStatus, allowed: bool
) -> None:
    shipment = Shipment(order_id=uuid4(), warehouse_id=uuid4(), status=current)
    if allowed:
        ensure_shipment_transition(shipment, target)
    else:
        with pytest.raises(InvalidTransitionError):
            ensure_shipment_transition(shipment, target)
