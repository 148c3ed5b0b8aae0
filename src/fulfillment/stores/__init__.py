"""Ledger store implementations for the fulfillment library."""

from fulfillment.stores.cascade import delete_coupon, delete_order
from fulfillment.stores.in_memory import InMemoryLedgerStore
from fulfillment.stores.interface import (
    DEFAULT_CONFLICT_RETRY,
    LedgerStore,
    TransactionWork,
)
from fulfillment.stores.postgresql import PostgreSQLLedgerStore
from fulfillment.stores.transaction import (
    ChangeSet,
    LedgerTransaction,
    PendingWrite,
    WriteOp,
)

# SQLite support is optional - only import if aiosqlite is available
try:
    from fulfillment.stores.sqlite import SQLiteLedgerStore  # noqa: F401

    _SQLITE_AVAILABLE = True
except ImportError:
    _SQLITE_AVAILABLE = False

__all__ = [
    # Transactions
    "ChangeSet",
    "LedgerTransaction",
    "PendingWrite",
    "TransactionWork",
    "WriteOp",
    # Abstract base classes
    "LedgerStore",
    "DEFAULT_CONFLICT_RETRY",
    # Concrete implementations
    "InMemoryLedgerStore",
    "PostgreSQLLedgerStore",
    # Cascading deletes
    "delete_coupon",
    "delete_order",
]

# Add SQLiteLedgerStore to __all__ only if available
if _SQLITE_AVAILABLE:
    __all__.append("SQLiteLedgerStore")
