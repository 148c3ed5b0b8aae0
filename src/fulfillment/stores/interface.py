"""
Ledger store interface.

The ledger store is the durable keyed storage behind the fulfillment
engine. It holds immutable LedgerRecord snapshots and applies buffered
transactions atomically or not at all.

Backends implement four hooks (``_fetch``, ``_fetch_partition``,
``_find_unique`` and ``_apply``); transaction semantics, tracing and
conflict retries are shared here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar
from uuid import UUID

from fulfillment.exceptions import ConflictError
from fulfillment.models.base import LedgerRecord
from fulfillment.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_READ_COUNT,
    ATTR_WRITE_COUNT,
    Tracer,
    create_tracer,
)
from fulfillment.retry import RetryConfig, RetryError, retry_async
from fulfillment.stores.transaction import ChangeSet, LedgerTransaction

logger = logging.getLogger(__name__)

TRecord = TypeVar("TRecord", bound=LedgerRecord)
T = TypeVar("T")

TransactionWork = Callable[[LedgerTransaction], Awaitable[T]]


DEFAULT_CONFLICT_RETRY = RetryConfig(
    max_retries=10,
    initial_delay=0.002,
    max_delay=0.1,
    exponential_base=2.0,
    jitter=0.5,
)


class LedgerStore(ABC):
    """
    Abstract base class for ledger stores.

    Concurrency control is optimistic: transactions never block each other
    while they run, and the store serializes only the short validate-and-apply
    step at commit. Two transactions that both reserve from the same inventory
    row, or both count the usages of the same coupon and add one, cannot both
    commit; the loser gets ConflictError and ``run_in_transaction`` re-runs it
    against the new state.

    Implementations:
        - InMemoryLedgerStore: For testing and single-process use
        - SQLiteLedgerStore: Embedded persistence via aiosqlite
        - PostgreSQLLedgerStore: Production persistence via SQLAlchemy
    """

    def __init__(
        self,
        *,
        conflict_retry: RetryConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conflict_retry = conflict_retry or DEFAULT_CONFLICT_RETRY
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def backend_name(self) -> str:
        """Short backend name used in span names and logs."""
        return type(self).__name__

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerTransaction]:
        """
        Open a transaction that commits when the block exits normally.

        Any exception raised inside the block discards all buffered writes.

        Raises:
            ConflictError: If a concurrent commit invalidated what was read
            DuplicateKeyError: If an insert collides with a committed row

        Example:
            >>> async with store.transaction() as tx:
            ...     coupon = await tx.require(Coupon, coupon_id)
            ...     tx.insert(CouponUsage(coupon_id=coupon.id, user_id=user_id))
        """
        tx = LedgerTransaction(self)
        try:
            yield tx
        except BaseException:
            tx._discard()
            raise
        await tx._commit()

    async def run_in_transaction(
        self,
        work: TransactionWork[T],
        *,
        retry: RetryConfig | None = None,
        name: str = "transaction",
    ) -> T:
        """
        Run ``work`` in a transaction, retrying it on ConflictError.

        ``work`` is re-executed from scratch on every attempt, so it must not
        have side effects outside the transaction.

        Args:
            work: Async callable receiving the transaction
            retry: Backoff for conflicts (defaults to the store's)
            name: Operation name for logging

        Returns:
            Whatever ``work`` returned on the attempt that committed

        Raises:
            ConflictError: If every attempt conflicted
        """

        async def attempt() -> T:
            async with self.transaction() as tx:
                return await work(tx)

        try:
            return await retry_async(
                attempt,
                config=retry or self._conflict_retry,
                retryable_exceptions=(ConflictError,),
                operation_name=name,
            )
        except RetryError as e:
            raise e.last_error from None

    async def in_transaction(
        self,
        tx: LedgerTransaction | None,
        work: TransactionWork[T],
        *,
        name: str = "transaction",
    ) -> T:
        """Run ``work`` in ``tx`` if given, otherwise in a new retried transaction."""
        if tx is not None:
            return await work(tx)
        return await self.run_in_transaction(work, name=name)

    async def get(self, model: type[TRecord], key: str | UUID) -> TRecord | None:
        """Read a single committed record outside any transaction."""
        return await self._fetch(model, str(key))

    async def list_partition(self, model: type[TRecord], partition: str | UUID) -> list[TRecord]:
        """Read the committed records of a partition, oldest first."""
        records, _ = await self._fetch_partition(model, str(partition))
        return sorted(records, key=lambda r: (r.created_at, r.ledger_key()))

    async def _commit_changes(self, changes: ChangeSet) -> None:
        with self._tracer.span(
            f"fulfillment.ledger.{self.backend_name}.commit",
            {
                ATTR_DB_SYSTEM: self.backend_name,
                ATTR_DB_OPERATION: "commit",
                ATTR_WRITE_COUNT: len(changes.writes),
                ATTR_READ_COUNT: len(changes.reads) + len(changes.partition_reads),
            },
        ):
            await self._apply(changes)
        logger.debug(
            "Committed %d write(s) to %s",
            len(changes.writes),
            self.backend_name,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:  # noqa: B027
        """Prepare storage (create tables). No-op by default."""

    async def close(self) -> None:  # noqa: B027
        """Release connections. No-op by default."""

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _fetch(self, model: type[TRecord], key: str) -> TRecord | None:
        """Return the committed record with ``key`` or None."""
        pass

    @abstractmethod
    async def _fetch_partition(
        self, model: type[TRecord], partition: str
    ) -> tuple[list[TRecord], int]:
        """Return the committed records of a partition and its version."""
        pass

    @abstractmethod
    async def _find_unique(
        self, model: type[TRecord], field_name: str, value: str
    ) -> TRecord | None:
        """Return the committed record owning a unique value or None."""
        pass

    @abstractmethod
    async def _apply(self, changes: ChangeSet) -> None:
        """
        Validate and apply a change set atomically.

        Raises:
            ConflictError: If a read or expected version no longer matches
            DuplicateKeyError: If a unique value or new key is already taken
        """
        pass


__all__ = [
    "DEFAULT_CONFLICT_RETRY",
    "LedgerStore",
    "TransactionWork",
]
