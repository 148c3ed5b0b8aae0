"""
PostgreSQL ledger store implementation.

Production-ready ledger store using PostgreSQL with async support via
SQLAlchemy. Commits lock the rows and partitions they depend on with
``SELECT ... FOR UPDATE`` so validation and apply are atomic across
processes.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fulfillment.exceptions import ConflictError, DuplicateKeyError
from fulfillment.migrations import get_schema, split_statements
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

_INSERT_RECORD = """
    INSERT INTO ledger_records (
        entity, record_key, partition_key, version, data, created_at, updated_at
    )
    VALUES (
        :entity, :key, :partition, :version, CAST(:data AS JSONB), :created_at, :updated_at
    )
"""

_UPSERT_RECORD = (
    _INSERT_RECORD
    + """
    ON CONFLICT ON CONSTRAINT pk_ledger_records DO UPDATE SET
        partition_key = EXCLUDED.partition_key,
        version = EXCLUDED.version,
        data = EXCLUDED.data,
        updated_at = EXCLUDED.updated_at
"""
)

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class PostgreSQLLedgerStore(LedgerStore):
    """
    PostgreSQL implementation of the ledger store.

    Features:
    - Row-level locking at commit (no long-lived locks while work runs)
    - Unique field values enforced by a primary key on ledger_unique_keys
    - Deadlocks and serialization failures surface as ConflictError,
      so ``run_in_transaction`` retries them
    - OpenTelemetry tracing support via Tracer composition

    Attributes:
        _session_factory: SQLAlchemy async session factory

    Example:
        >>> from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
        >>>
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> session_factory = async_sessionmaker(engine, expire_on_commit=False)
        >>> store = PostgreSQLLedgerStore(session_factory)
        >>> await store.initialize()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        conflict_retry: RetryConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the PostgreSQL ledger store.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            conflict_retry: Backoff for transactions that hit a conflict
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces
        """
        super().__init__(
            conflict_retry=conflict_retry,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._session_factory = session_factory

    @classmethod
    def from_engine(
        cls,
        engine: AsyncEngine,
        **kwargs: Any,
    ) -> PostgreSQLLedgerStore:
        """Create a store with a session factory bound to ``engine``."""
        return cls(async_sessionmaker(engine, expire_on_commit=False), **kwargs)

    @property
    def backend_name(self) -> str:
        return "postgresql"

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory."""
        return self._session_factory

    async def initialize(self) -> None:
        """Create the ledger tables if they don't exist."""
        async with self._session_factory() as session:
            for statement in split_statements(get_schema("ledger")):
                await session.execute(text(statement))
            await session.commit()
        logger.info("Initialized PostgreSQL ledger schema")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch(self, model: type[TRecord], key: str) -> TRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    """
                    SELECT data::text FROM ledger_records
                    WHERE entity = :entity AND record_key = :key
                    """
                ),
                {"entity": model.entity_name(), "key": key},
            )
            row = result.fetchone()
        return model.model_validate_json(row[0]) if row else None

    async def _fetch_partition(
        self, model: type[TRecord], partition: str
    ) -> tuple[list[TRecord], int]:
        params = {"entity": model.entity_name(), "partition": partition}
        async with self._session_factory() as session:
            # Version first: a commit landing in between makes it stale, never too new
            version_result = await session.execute(
                text(
                    """
                    SELECT version FROM ledger_partitions
                    WHERE entity = :entity AND partition_key = :partition
                    """
                ),
                params,
            )
            version_row = version_result.fetchone()
            result = await session.execute(
                text(
                    """
                    SELECT data::text FROM ledger_records
                    WHERE entity = :entity AND partition_key = :partition
                    """
                ),
                params,
            )
            rows = result.fetchall()
        records = [model.model_validate_json(row[0]) for row in rows]
        return records, version_row[0] if version_row else 0

    async def _find_unique(
        self, model: type[TRecord], field_name: str, value: str
    ) -> TRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    """
                    SELECT r.data::text
                    FROM ledger_unique_keys u
                    JOIN ledger_records r
                      ON r.entity = u.entity AND r.record_key = u.record_key
                    WHERE u.entity = :entity AND u.field = :field AND u.value = :value
                    """
                ),
                {"entity": model.entity_name(), "field": field_name, "value": value},
            )
            row = result.fetchone()
        return model.model_validate_json(row[0]) if row else None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def _apply(self, changes: ChangeSet) -> None:
        async with self._session_factory() as session:
            try:
                await self._validate_and_write(session, changes)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise self._translate_integrity_error(e, changes) from e
            except DBAPIError as e:
                await session.rollback()
                if _sqlstate(e) in _RETRYABLE_SQLSTATES:
                    raise ConflictError("ledger", "commit", 0) from e
                raise
            except BaseException:
                await session.rollback()
                raise

    async def _lock_partitions(
        self, session: AsyncSession, changes: ChangeSet
    ) -> dict[RowRef, int]:
        wanted = set(changes.partition_reads)
        wanted.update(
            (entity, pending.partition)
            for (entity, _), pending in changes.writes.items()
            if pending.partition is not None
        )

        versions: dict[RowRef, int] = {}
        for entity, partition in sorted(wanted):
            params = {"entity": entity, "partition": partition}
            await session.execute(
                text(
                    """
                    INSERT INTO ledger_partitions (entity, partition_key, version)
                    VALUES (:entity, :partition, 0)
                    ON CONFLICT (entity, partition_key) DO NOTHING
                    """
                ),
                params,
            )
            result = await session.execute(
                text(
                    """
                    SELECT version FROM ledger_partitions
                    WHERE entity = :entity AND partition_key = :partition
                    FOR UPDATE
                    """
                ),
                params,
            )
            versions[(entity, partition)] = result.scalar_one()
        return versions

    async def _validate_and_write(self, session: AsyncSession, changes: ChangeSet) -> None:
        partition_versions = await self._lock_partitions(session, changes)

        previous: dict[RowRef, LedgerRecord | None] = {}
        row_versions: dict[RowRef, int] = {}
        for entity, key in rows_to_check(changes):
            result = await session.execute(
                text(
                    """
                    SELECT version, data::text FROM ledger_records
                    WHERE entity = :entity AND record_key = :key
                    FOR UPDATE
                    """
                ),
                {"entity": entity, "key": key},
            )
            row = result.fetchone()
            pending = changes.writes.get((entity, key))
            if row is None:
                previous[(entity, key)] = None
                continue
            row_versions[(entity, key)] = row[0]
            previous[(entity, key)] = (
                type(pending.record).model_validate_json(row[1]) if pending else None
            )

        unique_owners: dict[tuple[str, str, str], str] = {}
        for entity, field_name, value in unique_claims(changes):
            result = await session.execute(
                text(
                    """
                    SELECT record_key FROM ledger_unique_keys
                    WHERE entity = :entity AND field = :field AND value = :value
                    """
                ),
                {"entity": entity, "field": field_name, "value": value},
            )
            owner = result.scalar_one_or_none()
            if owner is not None:
                unique_owners[(entity, field_name, value)] = owner

        validate_change_set(changes, row_versions, partition_versions, unique_owners)

        for entity, partition in touched_partitions(changes, previous):
            await session.execute(
                text(
                    """
                    INSERT INTO ledger_partitions (entity, partition_key, version)
                    VALUES (:entity, :partition, 1)
                    ON CONFLICT (entity, partition_key)
                    DO UPDATE SET version = ledger_partitions.version + 1
                    """
                ),
                {"entity": entity, "partition": partition},
            )

        for entity, key in changes.writes:
            await session.execute(
                text("DELETE FROM ledger_unique_keys WHERE entity = :entity AND record_key = :key"),
                {"entity": entity, "key": key},
            )

        for (entity, key), pending in changes.writes.items():
            if pending.op is WriteOp.DELETE:
                await session.execute(
                    text("DELETE FROM ledger_records WHERE entity = :entity AND record_key = :key"),
                    {"entity": entity, "key": key},
                )
                continue

            record = record_to_store(pending, previous.get((entity, key)))
            # Plain INSERT so a concurrent insert of the same key fails on the primary key
            sql = _INSERT_RECORD if pending.op is WriteOp.INSERT else _UPSERT_RECORD
            await session.execute(
                text(sql),
                {
                    "entity": entity,
                    "key": key,
                    "partition": pending.partition,
                    "version": record.version,
                    "data": record.model_dump_json(),
                    "created_at": record.created_at,
                    "updated_at": record.updated_at,
                },
            )
            for field_name, value in record.unique_values().items():
                await session.execute(
                    text(
                        """
                        INSERT INTO ledger_unique_keys (entity, field, value, record_key)
                        VALUES (:entity, :field, :value, :key)
                        """
                    ),
                    {"entity": entity, "field": field_name, "value": value, "key": key},
                )

    @staticmethod
    def _translate_integrity_error(error: IntegrityError, changes: ChangeSet) -> Exception:
        """
        Map a constraint violation raised by a concurrent insert.

        Rows that did not exist cannot be locked, so two commits inserting
        the same key or claiming the same unique value meet at the
        constraint instead.
        """
        message = str(error.orig)
        if "pk_ledger_unique_keys" in message:
            return DuplicateKeyError("ledger", "unique", message)
        if "pk_ledger_records" in message:
            for ref, pending in changes.writes.items():
                if pending.op is WriteOp.INSERT and ref in changes.reads:
                    return ConflictError(ref[0], ref[1], 0)
            return DuplicateKeyError("ledger", "key", message)
        return error


__all__ = ["PostgreSQLLedgerStore"]
