"""
Ledger transactions with buffered writes and optimistic validation.

A LedgerTransaction reads committed state from its store and buffers every
write. Nothing is visible to other transactions until commit, when the
store validates, atomically, that:

- every row read with ``for_update`` (or written with an expected version)
  still has the version the transaction saw, and
- every partition counted or scanned with ``for_update`` has not gained,
  lost or changed a row since.

If validation fails the store raises ConflictError and applies nothing.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

from fulfillment.exceptions import ConflictError, DuplicateKeyError, NotFoundError
from fulfillment.models.base import LedgerRecord, utcnow

if TYPE_CHECKING:
    from fulfillment.stores.interface import LedgerStore

TRecord = TypeVar("TRecord", bound=LedgerRecord)

RowRef = tuple[str, str]
"""(entity, key) or (entity, partition)."""


class WriteOp(Enum):
    """Kind of buffered write."""

    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass
class PendingWrite:
    """
    A write waiting for commit.

    Attributes:
        op: Kind of write
        entity: Entity name of the record
        key: Store key of the record
        record: Record to store (for DELETE, the record being removed)
        expected_version: Version the row must still have at commit time
            (0 = must not exist, None = unconditional)
    """

    op: WriteOp
    entity: str
    key: str
    record: LedgerRecord
    expected_version: int | None

    @property
    def partition(self) -> str | None:
        return self.record.partition_key()


@dataclass
class ChangeSet:
    """Everything a backend needs to validate and apply a commit."""

    reads: dict[RowRef, int] = field(default_factory=dict)
    partition_reads: dict[RowRef, int] = field(default_factory=dict)
    writes: dict[RowRef, PendingWrite] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.writes


def _key(key: str | UUID) -> str:
    return str(key)


class LedgerTransaction:
    """
    Unit of work against a LedgerStore.

    Obtain one from ``LedgerStore.transaction()`` or
    ``LedgerStore.run_in_transaction()``; never construct it directly.

    Reads are async because they may hit the database. Writes are
    synchronous because they only touch the buffer. Records returned by
    ``insert`` and ``update`` already carry the version they will have once
    the transaction commits.

    Example:
        >>> async with store.transaction() as tx:
        ...     row = await tx.require(InventoryRow, key, for_update=True)
        ...     tx.update(row.evolve(reserved=row.reserved + 2))
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store
        self._changes = ChangeSet()
        self._closed = False

    @property
    def changes(self) -> ChangeSet:
        """Buffered reads and writes (for backends and tests)."""
        return self._changes

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already committed or rolled back")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self,
        model: type[TRecord],
        key: str | UUID,
        *,
        for_update: bool = False,
    ) -> TRecord | None:
        """
        Get a record by key, seeing this transaction's own writes.

        With ``for_update`` the version read is validated at commit, so a
        concurrent change to the row makes the commit fail.
        """
        self._ensure_open()
        ref = (model.entity_name(), _key(key))

        pending = self._changes.writes.get(ref)
        if pending is not None:
            if pending.op is WriteOp.DELETE:
                return None
            return pending.record  # type: ignore[return-value]

        record = await self._store._fetch(model, ref[1])
        if for_update:
            self._changes.reads.setdefault(ref, record.version if record else 0)
        return record

    async def get_for_update(self, model: type[TRecord], key: str | UUID) -> TRecord | None:
        """Shorthand for ``get(model, key, for_update=True)``."""
        return await self.get(model, key, for_update=True)

    async def require(
        self,
        model: type[TRecord],
        key: str | UUID,
        *,
        for_update: bool = False,
    ) -> TRecord:
        """Like ``get`` but raises NotFoundError for missing records."""
        record = await self.get(model, key, for_update=for_update)
        if record is None:
            raise NotFoundError(model.entity_name(), key)
        return record

    async def select(
        self,
        model: type[TRecord],
        partition: str | UUID,
        where: Callable[[TRecord], bool] | None = None,
        *,
        for_update: bool = False,
    ) -> list[TRecord]:
        """
        List the records of a partition, oldest first.

        With ``for_update`` the partition's version is validated at commit,
        which serializes transactions that count a set and then add to it.
        """
        self._ensure_open()
        entity = model.entity_name()
        partition_key = _key(partition)

        records, partition_version = await self._store._fetch_partition(model, partition_key)
        if for_update:
            self._changes.partition_reads.setdefault((entity, partition_key), partition_version)

        merged: dict[str, TRecord] = {r.ledger_key(): r for r in records}
        for (write_entity, key), pending in self._changes.writes.items():
            if write_entity != entity or pending.partition != partition_key:
                continue
            if pending.op is WriteOp.DELETE:
                merged.pop(key, None)
            else:
                merged[key] = pending.record  # type: ignore[assignment]

        result = sorted(merged.values(), key=lambda r: (r.created_at, r.ledger_key()))
        if where is not None:
            result = [r for r in result if where(r)]
        return result

    async def select_for_update(
        self,
        model: type[TRecord],
        partition: str | UUID,
        where: Callable[[TRecord], bool] | None = None,
    ) -> list[TRecord]:
        """Shorthand for ``select(..., for_update=True)``."""
        return await self.select(model, partition, where, for_update=True)

    async def count(
        self,
        model: type[TRecord],
        partition: str | UUID,
        where: Callable[[TRecord], bool] | None = None,
        *,
        for_update: bool = False,
    ) -> int:
        """Count the records of a partition matching ``where``."""
        return len(await self.select(model, partition, where, for_update=for_update))

    async def find_unique(
        self,
        model: type[TRecord],
        field_name: str,
        value: str,
    ) -> TRecord | None:
        """Find the record owning a unique field value."""
        self._ensure_open()
        if field_name not in model.__unique__:
            raise ValueError(f"{model.__name__}.{field_name} is not a unique field")

        entity = model.entity_name()
        for (write_entity, _), pending in self._changes.writes.items():
            if write_entity != entity or pending.op is WriteOp.DELETE:
                continue
            if pending.record.unique_values().get(field_name) == value:
                return pending.record  # type: ignore[return-value]

        record = await self._store._find_unique(model, field_name, value)
        if record is None:
            return None
        # The stored owner may have been deleted or renamed in this transaction
        current = await self.get(model, record.ledger_key())
        if current is None or current.unique_values().get(field_name) != value:
            return None
        return current

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: TRecord) -> TRecord:
        """
        Buffer a new record.

        Raises:
            DuplicateKeyError: If this transaction already holds the key.
                Collisions with committed rows are detected at commit.
        """
        self._ensure_open()
        ref = (record.entity_name(), record.ledger_key())
        existing = self._changes.writes.get(ref)
        if existing is not None and existing.op is not WriteOp.DELETE:
            raise DuplicateKeyError(ref[0], "key", ref[1])

        if existing is not None:
            # Re-inserting a key deleted earlier in this transaction
            version = (existing.expected_version or 0) + 1
            stamped = record.evolve(version=version, updated_at=utcnow())
            self._changes.writes[ref] = PendingWrite(
                WriteOp.UPDATE, ref[0], ref[1], stamped, existing.expected_version
            )
            return stamped

        stamped = record.evolve(version=1, updated_at=utcnow())
        self._changes.writes[ref] = PendingWrite(WriteOp.INSERT, ref[0], ref[1], stamped, 0)
        return stamped

    def update(self, record: TRecord) -> TRecord:
        """
        Buffer a change to a record that was read from the store.

        The version carried by ``record`` is the one checked at commit.
        Updating the same record several times keeps the first expectation.
        """
        self._ensure_open()
        ref = (record.entity_name(), record.ledger_key())
        existing = self._changes.writes.get(ref)

        if existing is not None:
            if existing.op is WriteOp.DELETE:
                raise NotFoundError(ref[0], ref[1])
            stamped = record.evolve(version=existing.record.version, updated_at=utcnow())
            self._changes.writes[ref] = PendingWrite(
                existing.op, ref[0], ref[1], stamped, existing.expected_version
            )
            return stamped

        if record.version == 0:
            raise ValueError(f"Cannot update {ref[0]} {ref[1]}: record was never committed")

        stamped = record.evolve(version=record.version + 1, updated_at=utcnow())
        self._changes.writes[ref] = PendingWrite(
            WriteOp.UPDATE, ref[0], ref[1], stamped, record.version
        )
        return stamped

    def upsert(self, record: TRecord) -> TRecord:
        """
        Buffer an unconditional write.

        No version check is made; the store assigns the next version on
        commit, so the returned record's version is not meaningful.
        """
        self._ensure_open()
        ref = (record.entity_name(), record.ledger_key())
        existing = self._changes.writes.get(ref)
        stamped = record.evolve(updated_at=utcnow())

        if existing is not None and existing.op is not WriteOp.DELETE:
            stamped = stamped.evolve(version=existing.record.version)
            self._changes.writes[ref] = PendingWrite(
                existing.op, ref[0], ref[1], stamped, existing.expected_version
            )
        else:
            self._changes.writes[ref] = PendingWrite(WriteOp.UPSERT, ref[0], ref[1], stamped, None)
        return stamped

    async def compare_and_swap(
        self,
        model: type[TRecord],
        key: str | UUID,
        expected_version: int,
        record: TRecord,
    ) -> TRecord:
        """
        Replace a record only if it still has ``expected_version``.

        ``expected_version=0`` means the record must not exist yet. The check
        is made now and again at commit.

        Raises:
            ConflictError: If the current version differs
        """
        current = await self.get(model, key, for_update=True)
        actual = current.version if current else 0
        if actual != expected_version:
            raise ConflictError(model.entity_name(), _key(key), expected_version, actual)

        if current is None:
            return self.insert(record)
        return self.update(record.evolve(version=current.version))

    def delete(self, record: LedgerRecord) -> None:
        """Buffer the removal of a record read from the store."""
        self._ensure_open()
        ref = (record.entity_name(), record.ledger_key())
        existing = self._changes.writes.get(ref)

        if existing is not None:
            if existing.op is WriteOp.INSERT:
                del self._changes.writes[ref]
                return
            if existing.op is WriteOp.DELETE:
                return
            self._changes.writes[ref] = PendingWrite(
                WriteOp.DELETE, ref[0], ref[1], existing.record, existing.expected_version
            )
            return

        self._changes.writes[ref] = PendingWrite(
            WriteOp.DELETE, ref[0], ref[1], record, record.version
        )

    # ------------------------------------------------------------------
    # Lifecycle (driven by LedgerStore.transaction)
    # ------------------------------------------------------------------

    async def _commit(self) -> None:
        self._ensure_open()
        try:
            if not self._changes.is_empty:
                await self._store._commit_changes(self._changes)
        finally:
            self._closed = True

    def _discard(self) -> None:
        self._changes = ChangeSet()
        self._closed = True


__all__ = [
    "ChangeSet",
    "LedgerTransaction",
    "PendingWrite",
    "RowRef",
    "WriteOp",
]
