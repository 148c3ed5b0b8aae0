"""
Shared pytest fixtures for the fulfillment library tests.

This module provides:
- Store fixtures (memory_store, sqlite_store, ledger_store parametrized
  over both backends)
- Service fixtures (catalog, inventory, coupons, gateway, orchestrator)
- Sample data fixtures (user_id, warehouse ids, stocked products)
- A fast FulfillmentConfig so retries and backoff do not slow the suite

All fixtures are function scoped so every test starts from an empty ledger.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from fulfillment import (
    CouponAuthorizer,
    FulfillmentConfig,
    InMemoryLedgerStore,
    InMemoryPaymentGateway,
    InventoryReservationManager,
    LedgerStore,
    OrderOrchestrator,
    Product,
    ProductCatalog,
    RetryConfig,
)

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# ============================================================================
# Skip Condition
# ============================================================================

skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# ============================================================================
# Configuration
# ============================================================================

FAST_CONFLICT_RETRY = RetryConfig(
    max_retries=100,
    initial_delay=0.001,
    max_delay=0.02,
    exponential_base=2.0,
    jitter=0.5,
)

FAST_PAYMENT_RETRY = RetryConfig(
    max_retries=2,
    initial_delay=0.001,
    max_delay=0.01,
    jitter=0.0,
)


@pytest.fixture
def config() -> FulfillmentConfig:
    """FulfillmentConfig with millisecond backoff and a short payment timeout."""
    return FulfillmentConfig(
        conflict_retry=FAST_CONFLICT_RETRY,
        payment_retry=FAST_PAYMENT_RETRY,
        payment_timeout=0.5,
    )


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    """Provide a fresh in-memory ledger store."""
    return InMemoryLedgerStore(conflict_retry=FAST_CONFLICT_RETRY, enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[LedgerStore, None]:
    """Provide an initialized SQLite ledger store backed by a temporary file."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from fulfillment.stores.sqlite import SQLiteLedgerStore

    store = SQLiteLedgerStore(
        str(tmp_path / "ledger.db"),
        conflict_retry=FAST_CONFLICT_RETRY,
        enable_tracing=False,
    )
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
def ledger_store(request: pytest.FixtureRequest) -> LedgerStore:
    """Run the test once per ledger backend."""
    return request.getfixturevalue(f"{request.param}_store")


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def catalog(ledger_store: LedgerStore) -> ProductCatalog:
    return ProductCatalog(ledger_store)


@pytest.fixture
def inventory(ledger_store: LedgerStore) -> InventoryReservationManager:
    return InventoryReservationManager(ledger_store, enable_tracing=False)


@pytest.fixture
def coupons(ledger_store: LedgerStore) -> CouponAuthorizer:
    return CouponAuthorizer(ledger_store, enable_tracing=False)


@pytest.fixture
def gateway() -> InMemoryPaymentGateway:
    return InMemoryPaymentGateway()


@pytest.fixture
def orchestrator(
    ledger_store: LedgerStore,
    gateway: InMemoryPaymentGateway,
    catalog: ProductCatalog,
    inventory: InventoryReservationManager,
    coupons: CouponAuthorizer,
    config: FulfillmentConfig,
) -> OrderOrchestrator:
    return OrderOrchestrator(
        ledger_store,
        gateway,
        catalog=catalog,
        inventory=inventory,
        coupons=coupons,
        config=config,
        enable_tracing=False,
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def user_id() -> UUID:
    """Provide a random customer id."""
    return uuid4()


@dataclass(frozen=True)
class Warehouses:
    """Two warehouses with ids in a fixed string order (east < west)."""

    east: UUID
    west: UUID


@pytest.fixture
def warehouses() -> Warehouses:
    return Warehouses(
        east=UUID("00000000-0000-0000-0000-00000000000e"),
        west=UUID("00000000-0000-0000-0000-0000000000f0"),
    )


StockedProductFactory = Callable[..., Awaitable[Product]]


@pytest.fixture
def stocked_product(
    catalog: ProductCatalog,
    inventory: InventoryReservationManager,
) -> StockedProductFactory:
    """
    Factory registering a product and stocking it.

    Usage:
        chair = await stocked_product("CHAIR-1", "20.00", {warehouses.east: 5})
    """

    async def _create(
        sku: str,
        price: str,
        stock: dict[UUID, int],
    ) -> Product:
        product = await catalog.register(sku, f"Product {sku}", Decimal(price))
        for warehouse_id, quantity in stock.items():
            await inventory.restock(product.id, warehouse_id, quantity)
        return product

    return _create
