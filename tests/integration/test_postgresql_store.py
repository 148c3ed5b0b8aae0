"""
Integration tests for the PostgreSQL ledger store.

These tests run the store conformance suite against a real database and
race full checkouts across pooled connections, where transactions really
interleave.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import pytest

from fulfillment import (
    CheckoutRequest,
    CouponExhaustedError,
    DiscountType,
    InsufficientStockError,
    LineItemRequest,
    Order,
    OrderOrchestrator,
    OrderStatus,
    PostgreSQLLedgerStore,
    SplitAcrossWarehouses,
    summarize_order,
)
from fulfillment.stores import LedgerStore
from fulfillment.testing import LedgerStoreConformanceSuite

from .conftest import skip_if_no_postgres_infra

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


pytestmark = [
    pytest.mark.integration,
    pytest.mark.postgres,
    skip_if_no_postgres_infra,
]


class TestPostgreSQLLedgerStoreConformance(LedgerStoreConformanceSuite):
    """Run all LedgerStore conformance tests against PostgreSQLLedgerStore."""

    @pytest.fixture(autouse=True)
    def _engine(self, postgres_engine: AsyncEngine) -> None:
        self.engine = postgres_engine

    async def create_store(self) -> LedgerStore:
        return PostgreSQLLedgerStore.from_engine(self.engine, enable_tracing=False)


def _request(product_id: UUID, quantity: int = 1, coupon: str | None = None) -> CheckoutRequest:
    return CheckoutRequest(
        user_id=uuid4(),
        items=[LineItemRequest(product_id=product_id, quantity=quantity)],
        coupon_code=coupon,
    )


class TestPostgreSQLCheckout:
    """Concurrent order lifecycles on PostgreSQL."""

    async def test_stock_never_oversold(self, postgres_orchestrator: OrderOrchestrator) -> None:
        warehouse_id = uuid4()
        chair = await postgres_orchestrator.catalog.register("CHAIR-1", "Chair", "20.00")
        await postgres_orchestrator.inventory.restock(chair.id, warehouse_id, 10)

        results = await asyncio.gather(
            *(postgres_orchestrator.checkout(_request(chair.id, 3)) for _ in range(6)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Order) for r in results) == 3
        assert all(isinstance(r, (Order, InsufficientStockError)) for r in results), results
        row = await postgres_orchestrator.inventory.get_row(chair.id, warehouse_id)
        assert row is not None
        assert (row.quantity, row.reserved) == (10, 9)

    async def test_last_coupon_use(self, postgres_orchestrator: OrderOrchestrator) -> None:
        chair = await postgres_orchestrator.catalog.register("CHAIR-1", "Chair", "20.00")
        await postgres_orchestrator.inventory.restock(chair.id, uuid4(), 10)
        coupon = await postgres_orchestrator.coupons.create_coupon(
            "SAVE10", DiscountType.PERCENT, 10, uses_allowed=1
        )

        results = await asyncio.gather(
            *(
                postgres_orchestrator.checkout(_request(chair.id, coupon="SAVE10"))
                for _ in range(4)
            ),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Order)]
        assert len(winners) == 1
        assert winners[0].discount_amount == Decimal("2.00")
        assert sum(isinstance(r, CouponExhaustedError) for r in results) == 3
        assert await postgres_orchestrator.coupons.count_usages(coupon.id) == 1

    async def test_full_lifecycle(
        self,
        postgres_orchestrator: OrderOrchestrator,
        postgres_store: PostgreSQLLedgerStore,
    ) -> None:
        east, west = uuid4(), uuid4()
        chair = await postgres_orchestrator.catalog.register("CHAIR-1", "Chair", "20.00")
        await postgres_orchestrator.inventory.restock(chair.id, east, 2)
        await postgres_orchestrator.inventory.restock(chair.id, west, 3)

        order = await postgres_orchestrator.checkout(
            _request(chair.id, 5), strategy=SplitAcrossWarehouses()
        )
        shipments = await postgres_orchestrator.ship(order.id)
        for shipment in shipments:
            await postgres_orchestrator.mark_delivered(shipment.id)

        summary = await summarize_order(postgres_store, order.id)
        assert summary.status is OrderStatus.DELIVERED
        assert summary.total_amount == Decimal("100.00")
        assert len(shipments) == 2
        for warehouse_id in (east, west):
            row = await postgres_orchestrator.inventory.get_row(chair.id, warehouse_id)
            assert row is not None
            assert (row.quantity, row.reserved) == (0, 0)
