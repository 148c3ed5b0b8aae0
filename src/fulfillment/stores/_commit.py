"""
Commit validation shared by the ledger store backends.

Each backend gathers the current state of everything a change set touches
(under whatever lock or database transaction it uses) and hands it to
:func:`validate_change_set`. The rules are therefore identical whether
records live in dictionaries, SQLite or PostgreSQL.
"""

from fulfillment.exceptions import ConflictError, DuplicateKeyError
from fulfillment.models.base import LedgerRecord
from fulfillment.stores.transaction import ChangeSet, PendingWrite, RowRef, WriteOp

UniqueRef = tuple[str, str, str]
"""(entity, field, value)."""


def rows_to_check(changes: ChangeSet) -> list[RowRef]:
    """Every row whose current version the commit depends on, sorted."""
    return sorted(set(changes.reads) | set(changes.writes))


def unique_claims(changes: ChangeSet) -> list[UniqueRef]:
    """Unique values the change set wants to own after commit, sorted."""
    claims: set[UniqueRef] = set()
    for (entity, _), pending in changes.writes.items():
        if pending.op is WriteOp.DELETE:
            continue
        for field_name, value in pending.record.unique_values().items():
            claims.add((entity, field_name, value))
    return sorted(claims)


def _releases(changes: ChangeSet, owner: RowRef, field_name: str, value: str) -> bool:
    pending = changes.writes.get(owner)
    if pending is None:
        return False
    if pending.op is WriteOp.DELETE:
        return True
    return pending.record.unique_values().get(field_name) != value


def validate_change_set(
    changes: ChangeSet,
    row_versions: dict[RowRef, int],
    partition_versions: dict[RowRef, int],
    unique_owners: dict[UniqueRef, str],
) -> None:
    """
    Check a change set against the current committed state.

    Args:
        changes: The change set to commit
        row_versions: Current version of every row in ``rows_to_check``
            (0 or absent = row does not exist)
        partition_versions: Current version of every partition read
        unique_owners: Current owner key of every value in ``unique_claims``

    Raises:
        ConflictError: If a version read or expected no longer matches
        DuplicateKeyError: If a new key or unique value is already taken
    """
    for ref, seen in changes.reads.items():
        actual = row_versions.get(ref, 0)
        if actual != seen:
            raise ConflictError(ref[0], ref[1], seen, actual)

    for ref, seen in changes.partition_reads.items():
        actual = partition_versions.get(ref, 0)
        if actual != seen:
            raise ConflictError(ref[0], f"partition {ref[1]}", seen, actual)

    for ref, pending in changes.writes.items():
        actual = row_versions.get(ref, 0)
        if pending.op is WriteOp.INSERT and actual:
            if ref in changes.reads:
                raise ConflictError(ref[0], ref[1], 0, actual)
            raise DuplicateKeyError(ref[0], "key", ref[1])
        if pending.expected_version is not None and actual != pending.expected_version:
            raise ConflictError(ref[0], ref[1], pending.expected_version, actual)

    claimed: dict[UniqueRef, str] = {}
    for ref, pending in changes.writes.items():
        if pending.op is WriteOp.DELETE:
            continue
        for field_name, value in pending.record.unique_values().items():
            unique_ref = (ref[0], field_name, value)
            owner = unique_owners.get(unique_ref)
            if (
                owner is not None
                and owner != ref[1]
                and not _releases(changes, (ref[0], owner), field_name, value)
            ):
                raise DuplicateKeyError(ref[0], field_name, value)
            if claimed.setdefault(unique_ref, ref[1]) != ref[1]:
                raise DuplicateKeyError(ref[0], field_name, value)


def record_to_store(pending: PendingWrite, previous: LedgerRecord | None) -> LedgerRecord:
    """
    The record a non-delete write leaves in the store.

    Inserts and updates were stamped by the transaction. Unconditional
    writes get the next version here and keep the original created_at.
    """
    if pending.op is not WriteOp.UPSERT and pending.expected_version is not None:
        return pending.record
    if previous is None:
        return pending.record.evolve(version=1)
    return pending.record.evolve(version=previous.version + 1, created_at=previous.created_at)


def touched_partitions(
    changes: ChangeSet,
    previous: dict[RowRef, LedgerRecord | None],
) -> list[RowRef]:
    """Partitions gaining, losing or changing a row in this commit, sorted."""
    touched: set[RowRef] = set()
    for ref, pending in changes.writes.items():
        before = previous.get(ref)
        if before is not None and before.partition_key() is not None:
            touched.add((ref[0], before.partition_key()))  # type: ignore[arg-type]
        if pending.op is not WriteOp.DELETE and pending.partition is not None:
            touched.add((ref[0], pending.partition))
    return sorted(touched)


__all__ = [
    "UniqueRef",
    "record_to_store",
    "rows_to_check",
    "touched_partitions",
    "unique_claims",
    "validate_change_set",
]
