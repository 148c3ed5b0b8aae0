"""
Tests for the LedgerStore conformance suite.

Runs the suite against the in-memory and SQLite backends. The PostgreSQL
backend runs it in tests/integration.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from fulfillment.stores import InMemoryLedgerStore, LedgerStore
from fulfillment.testing import LedgerStoreConformanceSuite

from ..conftest import AIOSQLITE_AVAILABLE, skip_if_no_aiosqlite


class TestInMemoryLedgerStoreConformance(LedgerStoreConformanceSuite):
    """Run all LedgerStore conformance tests against InMemoryLedgerStore."""

    async def create_store(self) -> LedgerStore:
        return InMemoryLedgerStore(enable_tracing=False)


@pytest.mark.sqlite
@skip_if_no_aiosqlite
class TestSQLiteLedgerStoreConformance(LedgerStoreConformanceSuite):
    """Run all LedgerStore conformance tests against SQLiteLedgerStore."""

    @pytest.fixture(autouse=True)
    async def _database(self, tmp_path: Path) -> AsyncGenerator[None, None]:
        self.database = str(tmp_path / "conformance.db")
        self.opened: list[LedgerStore] = []
        yield
        for store in self.opened:
            await store.close()

    async def create_store(self) -> LedgerStore:
        from fulfillment.stores.sqlite import SQLiteLedgerStore

        store = SQLiteLedgerStore(self.database, enable_tracing=False)
        await store.initialize()
        self.opened.append(store)
        return store


def test_sqlite_availability_flag_matches_exports() -> None:
    import fulfillment.stores as stores

    assert ("SQLiteLedgerStore" in stores.__all__) == AIOSQLITE_AVAILABLE
