"""
Fixtures for tests that need a real PostgreSQL server.

A disposable ``postgres:15`` container is started once per session through
testcontainers. Without testcontainers or a reachable Docker daemon every
test marked ``skip_if_no_postgres_infra`` is skipped.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from fulfillment import (
    CouponAuthorizer,
    FulfillmentConfig,
    InMemoryPaymentGateway,
    InventoryReservationManager,
    OrderOrchestrator,
    PostgreSQLLedgerStore,
    ProductCatalog,
)

from ..conftest import FAST_CONFLICT_RETRY, FAST_PAYMENT_RETRY

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

try:
    from testcontainers.postgres import PostgresContainer
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def _docker_running() -> bool:
    if shutil.which("docker") is None:
        return False
    try:
        probe = subprocess.run(["docker", "info"], capture_output=True, timeout=5)
    except (subprocess.TimeoutExpired, OSError):
        return False
    return probe.returncode == 0


POSTGRES_INFRA_AVAILABLE = PostgresContainer is not None and _docker_running()

skip_if_no_postgres_infra = pytest.mark.skipif(
    not POSTGRES_INFRA_AVAILABLE,
    reason="needs testcontainers and a running Docker daemon",
)


LEDGER_TABLES = ("ledger_records", "ledger_partitions", "ledger_unique_keys")


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """One PostgreSQL container for the whole session."""
    if not POSTGRES_INFRA_AVAILABLE:
        pytest.skip("PostgreSQL container not available")

    with PostgresContainer("postgres:15") as container:
        yield container


@pytest.fixture(scope="session")
def postgres_connection_url(postgres_container: Any) -> str:
    """SQLAlchemy URL for the container using the asyncpg driver."""
    url: str = postgres_container.get_connection_url()
    _, _, rest = url.partition("://")
    return f"postgresql+asyncpg://{rest}"


@pytest_asyncio.fixture
async def postgres_engine(postgres_connection_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with the ledger schema in place and emptied around each test."""
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(
        postgres_connection_url,
        echo=False,
        pool_size=10,
        max_overflow=10,
    )
    await PostgreSQLLedgerStore.from_engine(engine, enable_tracing=False).initialize()

    truncate = text(f"TRUNCATE TABLE {', '.join(LEDGER_TABLES)}")

    async def empty_ledger() -> None:
        async with engine.begin() as conn:
            await conn.execute(truncate)

    await empty_ledger()
    yield engine
    await empty_ledger()
    await engine.dispose()


@pytest.fixture
def postgres_store(postgres_engine: AsyncEngine) -> PostgreSQLLedgerStore:
    """Provide a PostgreSQL ledger store on an empty schema."""
    return PostgreSQLLedgerStore.from_engine(
        postgres_engine,
        conflict_retry=FAST_CONFLICT_RETRY,
        enable_tracing=False,
    )


@pytest.fixture
def postgres_orchestrator(postgres_store: PostgreSQLLedgerStore) -> OrderOrchestrator:
    """Provide an orchestrator on PostgreSQL with an in-memory gateway."""
    inventory = InventoryReservationManager(postgres_store, enable_tracing=False)
    return OrderOrchestrator(
        postgres_store,
        InMemoryPaymentGateway(),
        catalog=ProductCatalog(postgres_store),
        inventory=inventory,
        coupons=CouponAuthorizer(postgres_store, enable_tracing=False),
        config=FulfillmentConfig(
            conflict_retry=FAST_CONFLICT_RETRY,
            payment_retry=FAST_PAYMENT_RETRY,
            payment_timeout=5.0,
        ),
        enable_tracing=False,
    )
