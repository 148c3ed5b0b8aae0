"""
In-memory ledger store implementation.

Useful for testing and development. Not suitable for production
as all records are lost when the process terminates.
"""

import asyncio
from collections import defaultdict

from fulfillment.models.base import LedgerRecord
from fulfillment.observability import Tracer
from fulfillment.retry import RetryConfig
from fulfillment.stores._commit import (
    UniqueRef,
    record_to_store,
    rows_to_check,
    touched_partitions,
    unique_claims,
    validate_change_set,
)
from fulfillment.stores.interface import LedgerStore, TRecord
from fulfillment.stores.transaction import ChangeSet, RowRef, WriteOp


class InMemoryLedgerStore(LedgerStore):
    """
    In-memory implementation of the ledger store.

    Holds committed records in dictionaries. Suitable for:

    - Unit testing
    - Development environments
    - Single-process applications with ephemeral state

    Thread-safety:
        Commits are validated and applied under an asyncio.Lock without
        awaiting in between, so concurrent coroutines in one process see
        serializable outcomes. Reads do not take the lock; records are
        immutable and a commit never yields halfway through.

    Example:
        >>> store = InMemoryLedgerStore()
        >>> async with store.transaction() as tx:
        ...     tx.insert(Product(sku="CHAIR-1", name="Chair", price="49.00"))

    Attributes:
        _records: (entity, key) -> committed record
        _partitions: (entity, partition) -> keys of the records in it
        _partition_versions: (entity, partition) -> commits that touched it
        _unique: (entity, field, value) -> owning record key
    """

    def __init__(
        self,
        *,
        conflict_retry: RetryConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        super().__init__(
            conflict_retry=conflict_retry,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._records: dict[RowRef, LedgerRecord] = {}
        self._partitions: dict[RowRef, set[str]] = defaultdict(set)
        self._partition_versions: dict[RowRef, int] = defaultdict(int)
        self._unique: dict[UniqueRef, str] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "inmemory"

    async def _fetch(self, model: type[TRecord], key: str) -> TRecord | None:
        return self._records.get((model.entity_name(), key))  # type: ignore[return-value]

    async def _fetch_partition(
        self, model: type[TRecord], partition: str
    ) -> tuple[list[TRecord], int]:
        entity = model.entity_name()
        ref = (entity, partition)
        keys = self._partitions.get(ref, set())
        records = [self._records[(entity, key)] for key in keys]
        return records, self._partition_versions.get(ref, 0)  # type: ignore[return-value]

    async def _find_unique(
        self, model: type[TRecord], field_name: str, value: str
    ) -> TRecord | None:
        entity = model.entity_name()
        key = self._unique.get((entity, field_name, value))
        if key is None:
            return None
        return self._records.get((entity, key))  # type: ignore[return-value]

    async def _apply(self, changes: ChangeSet) -> None:
        async with self._lock:
            previous = {ref: self._records.get(ref) for ref in rows_to_check(changes)}
            validate_change_set(
                changes,
                row_versions={ref: r.version for ref, r in previous.items() if r is not None},
                partition_versions={
                    ref: self._partition_versions.get(ref, 0) for ref in changes.partition_reads
                },
                unique_owners={
                    claim: self._unique[claim]
                    for claim in unique_claims(changes)
                    if claim in self._unique
                },
            )

            for partition in touched_partitions(changes, previous):
                self._partition_versions[partition] += 1

            # Release everything first so values can move between records
            for ref in changes.writes:
                before = previous[ref]
                if before is None:
                    continue
                for field_name, value in before.unique_values().items():
                    if self._unique.get((ref[0], field_name, value)) == ref[1]:
                        del self._unique[(ref[0], field_name, value)]
                partition = before.partition_key()
                if partition is not None:
                    self._partitions[(ref[0], partition)].discard(ref[1])

            for ref, pending in changes.writes.items():
                if pending.op is WriteOp.DELETE:
                    self._records.pop(ref, None)
                    continue
                record = record_to_store(pending, previous[ref])
                self._records[ref] = record
                for field_name, value in record.unique_values().items():
                    self._unique[(ref[0], field_name, value)] = ref[1]
                if pending.partition is not None:
                    self._partitions[(ref[0], pending.partition)].add(ref[1])

    async def clear(self) -> None:
        """Remove every record. Useful between tests."""
        async with self._lock:
            self._records.clear()
            self._partitions.clear()
            self._partition_versions.clear()
            self._unique.clear()


__all__ = ["InMemoryLedgerStore"]
