"""
SQLite ledger store implementation.

Lightweight ledger store using SQLite with async support via aiosqlite.

This implementation is suitable for:
- Development and testing environments
- Single-instance deployments
- Embedded applications

For high-concurrency production workloads, consider PostgreSQLLedgerStore.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiosqlite

from fulfillment.exceptions import ConsistencyViolation
from fulfillment.migrations import get_schema
from fulfillment.models.base import LedgerRecord
from fulfillment.observability import Tracer
from fulfillment.retry import RetryConfig
from fulfillment.stores._commit import (
    record_to_store,
    rows_to_check,
    touched_partitions,
    unique_claims,
    validate_change_set,
)
from fulfillment.stores.interface import LedgerStore, TRecord
from fulfillment.stores.transaction import ChangeSet, RowRef, WriteOp

logger = logging.getLogger(__name__)


class SQLiteLedgerStore(LedgerStore):
    """
    SQLite implementation of the ledger store.

    Uses aiosqlite for async database operations. Records are stored as
    JSON documents in ``ledger_records``; partition versions and unique
    claims live in their own tables (see ``fulfillment.migrations``).

    Each commit runs in a ``BEGIN IMMEDIATE`` transaction, which takes the
    database write lock before validation, so commits from several
    processes sharing one database file are serialized as well.

    SQLite-specific adaptations:
    - UUIDs stored as TEXT (36 characters, hyphenated format)
    - Timestamps stored as TEXT in ISO 8601 format
    - JSON stored as TEXT

    Attributes:
        _database: Path to SQLite file or ':memory:' for in-memory database
        _wal_mode: Whether WAL mode is enabled
        _busy_timeout: Timeout in ms for busy database
        _connection: The aiosqlite connection (set after connect/initialize)

    Example:
        >>> async with SQLiteLedgerStore(":memory:") as store:
        ...     await store.initialize()
        ...     async with store.transaction() as tx:
        ...         tx.insert(product)
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        conflict_retry: RetryConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite ledger store.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            wal_mode: If True, enable WAL mode for better concurrency (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            conflict_retry: Backoff for transactions that hit a conflict
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces
        """
        super().__init__(
            conflict_retry=conflict_retry,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        # One connection is shared, so statements from different
        # transactions must not interleave with a commit in progress.
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "sqlite"

    @property
    def database(self) -> str:
        """Get the database path."""
        return self._database

    @property
    def is_connected(self) -> bool:
        """Check if the store has an active connection."""
        return self._connection is not None

    async def __aenter__(self) -> SQLiteLedgerStore:
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _connect(self) -> None:
        """Open the database connection and configure settings."""
        if self._connection is not None:
            return

        # isolation_level=None: transactions are opened explicitly
        self._connection = await aiosqlite.connect(self._database, isolation_level=None)
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        if self._wal_mode:
            await self._connection.execute("PRAGMA journal_mode = WAL")
        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """
        Create the ledger tables if they don't exist.

        This method is idempotent - safe to call multiple times.
        """
        if self._connection is None:
            await self._connect()
        conn = self._ensure_connected()
        await conn.executescript(get_schema("ledger", backend="sqlite"))
        logger.info("Initialized SQLite ledger schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with store:' or call 'initialize()' first."
            )
        return self._connection

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch(self, model: type[TRecord], key: str) -> TRecord | None:
        conn = self._ensure_connected()
        async with self._lock:
            cursor = await conn.execute(
                "SELECT data FROM ledger_records WHERE entity = ? AND record_key = ?",
                (model.entity_name(), key),
            )
            row = await cursor.fetchone()
        return model.model_validate_json(row["data"]) if row else None

    async def _fetch_partition(
        self, model: type[TRecord], partition: str
    ) -> tuple[list[TRecord], int]:
        conn = self._ensure_connected()
        entity = model.entity_name()
        async with self._lock:
            # Version first: a commit landing in between makes it stale, never too new
            cursor = await conn.execute(
                "SELECT version FROM ledger_partitions WHERE entity = ? AND partition_key = ?",
                (entity, partition),
            )
            version_row = await cursor.fetchone()
            cursor = await conn.execute(
                """
                SELECT data FROM ledger_records
                WHERE entity = ? AND partition_key = ?
                """,
                (entity, partition),
            )
            rows = await cursor.fetchall()
        records = [model.model_validate_json(row["data"]) for row in rows]
        return records, version_row["version"] if version_row else 0

    async def _find_unique(
        self, model: type[TRecord], field_name: str, value: str
    ) -> TRecord | None:
        conn = self._ensure_connected()
        async with self._lock:
            cursor = await conn.execute(
                """
                SELECT r.data
                FROM ledger_unique_keys u
                JOIN ledger_records r
                  ON r.entity = u.entity AND r.record_key = u.record_key
                WHERE u.entity = ? AND u.field = ? AND u.value = ?
                """,
                (model.entity_name(), field_name, value),
            )
            row = await cursor.fetchone()
        return model.model_validate_json(row["data"]) if row else None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def _apply(self, changes: ChangeSet) -> None:
        conn = self._ensure_connected()
        async with self._lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                await self._validate_and_write(conn, changes)
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def _validate_and_write(self, conn: aiosqlite.Connection, changes: ChangeSet) -> None:
        previous: dict[RowRef, LedgerRecord | None] = {}
        row_versions: dict[RowRef, int] = {}
        for ref in rows_to_check(changes):
            cursor = await conn.execute(
                "SELECT version, data FROM ledger_records WHERE entity = ? AND record_key = ?",
                ref,
            )
            row = await cursor.fetchone()
            pending = changes.writes.get(ref)
            if row is None:
                previous[ref] = None
                continue
            row_versions[ref] = row["version"]
            previous[ref] = (
                type(pending.record).model_validate_json(row["data"]) if pending else None
            )

        partition_versions: dict[RowRef, int] = {}
        for ref in changes.partition_reads:
            cursor = await conn.execute(
                "SELECT version FROM ledger_partitions WHERE entity = ? AND partition_key = ?",
                ref,
            )
            row = await cursor.fetchone()
            partition_versions[ref] = row["version"] if row else 0

        unique_owners: dict[tuple[str, str, str], str] = {}
        for claim in unique_claims(changes):
            cursor = await conn.execute(
                """
                SELECT record_key FROM ledger_unique_keys
                WHERE entity = ? AND field = ? AND value = ?
                """,
                claim,
            )
            row = await cursor.fetchone()
            if row is not None:
                unique_owners[claim] = row["record_key"]

        validate_change_set(changes, row_versions, partition_versions, unique_owners)

        for entity, partition in touched_partitions(changes, previous):
            await conn.execute(
                """
                INSERT INTO ledger_partitions (entity, partition_key, version)
                VALUES (?, ?, 1)
                ON CONFLICT (entity, partition_key) DO UPDATE SET version = version + 1
                """,
                (entity, partition),
            )

        for entity, key in changes.writes:
            await conn.execute(
                "DELETE FROM ledger_unique_keys WHERE entity = ? AND record_key = ?",
                (entity, key),
            )

        try:
            for ref, pending in changes.writes.items():
                if pending.op is WriteOp.DELETE:
                    await conn.execute(
                        "DELETE FROM ledger_records WHERE entity = ? AND record_key = ?",
                        ref,
                    )
                    continue

                record = record_to_store(pending, previous.get(ref))
                await conn.execute(
                    """
                    INSERT INTO ledger_records (
                        entity, record_key, partition_key, version, data, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (entity, record_key) DO UPDATE SET
                        partition_key = excluded.partition_key,
                        version = excluded.version,
                        data = excluded.data,
                        updated_at = excluded.updated_at
                    """,
                    (
                        ref[0],
                        ref[1],
                        pending.partition,
                        record.version,
                        record.model_dump_json(),
                        record.created_at.isoformat(),
                        record.updated_at.isoformat(),
                    ),
                )
                for field_name, value in record.unique_values().items():
                    await conn.execute(
                        """
                        INSERT INTO ledger_unique_keys (entity, field, value, record_key)
                        VALUES (?, ?, ?, ?)
                        """,
                        (ref[0], field_name, value, ref[1]),
                    )
        except aiosqlite.IntegrityError as e:
            # Validation ran under the write lock, so the bookkeeping tables disagree
            raise ConsistencyViolation(f"Ledger tables are inconsistent: {e}") from e


__all__ = ["SQLiteLedgerStore"]
