"""
Tests for the order summary view.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from fulfillment import (
    CheckoutRequest,
    LedgerStore,
    LineItemRequest,
    NotFoundError,
    OrderOrchestrator,
    OrderStatus,
    OrderSummary,
    list_order_summaries,
    summarize_order,
)

from ..conftest import Warehouses


@pytest.mark.asyncio
async def test_summary_reflects_order(
    orchestrator: OrderOrchestrator,
    ledger_store: LedgerStore,
    stocked_product,
    warehouses: Warehouses,
    user_id: UUID,
) -> None:
    chair = await stocked_product("CHAIR-1", "20.00", {warehouses.east: 5})
    desk = await stocked_product("DESK-1", "5.00", {warehouses.east: 5})
    order = await orchestrator.create_order(
        CheckoutRequest(
            user_id=user_id,
            items=[
                LineItemRequest(product_id=chair.id, quantity=2),
                LineItemRequest(product_id=desk.id, quantity=1),
            ],
        )
    )

    summary = await summarize_order(ledger_store, order.id)

    assert isinstance(summary, OrderSummary)
    assert summary.order_id == order.id
    assert summary.order_number == order.order_number
    assert summary.status is OrderStatus.PENDING
    assert summary.item_count == 2
    assert summary.subtotal == Decimal("45.00")
    assert summary.total_amount == Decimal("45.00")


@pytest.mark.asyncio
async def test_summary_follows_status(
    orchestrator: OrderOrchestrator,
    ledger_store: LedgerStore,
    stocked_product,
    warehouses: Warehouses,
    user_id: UUID,
) -> None:
    chair = await stocked_product("CHAIR-1", "20.00", {warehouses.east: 5})
    order = await orchestrator.checkout(
        CheckoutRequest(user_id=user_id, items=[LineItemRequest(product_id=chair.id, quantity=1)])
    )

    assert (await summarize_order(ledger_store, order.id)).status is OrderStatus.PROCESSING

    await orchestrator.cancel(order.id)

    assert (await summarize_order(ledger_store, order.id)).status is OrderStatus.REFUNDED


@pytest.mark.asyncio
async def test_missing_order(ledger_store: LedgerStore) -> None:
    with pytest.raises(NotFoundError):
        await summarize_order(ledger_store, uuid4())


@pytest.mark.asyncio
async def test_list_newest_first_with_status_filter(
    orchestrator: OrderOrchestrator,
    ledger_store: LedgerStore,
    stocked_product,
    warehouses: Warehouses,
    user_id: UUID,
) -> None:
    chair = await stocked_product("CHAIR-1", "20.00", {warehouses.east: 10})

    def request() -> CheckoutRequest:
        return CheckoutRequest(
            user_id=user_id, items=[LineItemRequest(product_id=chair.id, quantity=1)]
        )

    first = await orchestrator.create_order(request())
    second = await orchestrator.checkout(request())
    third = await orchestrator.create_order(request())
    # Another customer's order never shows up
    await orchestrator.create_order(
        CheckoutRequest(user_id=uuid4(), items=[LineItemRequest(product_id=chair.id, quantity=1)])
    )

    summaries = await list_order_summaries(ledger_store, user_id)
    pending = await list_order_summaries(ledger_store, user_id, status=OrderStatus.PENDING)

    assert [s.order_id for s in summaries] == [third.id, second.id, first.id]
    assert [s.order_id for s in pending] == [third.id, first.id]
    assert await list_order_summaries(ledger_store, uuid4()) == []


def test_summary_is_immutable(user_id: UUID) -> None:
    summary = OrderSummary(
        order_id=uuid4(),
        order_number="ORD-20300101-0001",
        user_id=user_id,
        status=OrderStatus.PENDING,
        placed_at=datetime(2030, 1, 1, tzinfo=UTC),
        currency="USD",
        subtotal=Decimal("10.00"),
        shipping_amount=Decimal("0.00"),
        tax_amount=Decimal("0.00"),
        discount_amount=Decimal("0.00"),
        total_amount=Decimal("10.00"),
        item_count=1,
    )

    with pytest.raises(PydanticValidationError):
        summary.item_count = 2  # type: ignore[misc]
