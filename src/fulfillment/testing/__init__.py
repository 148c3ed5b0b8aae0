"""
Test utilities for fulfillment-ledger.

Components:
    LedgerStoreConformanceSuite: Contract tests every LedgerStore backend
        must pass; subclass it with a ``create_store`` factory.

Note:
    This module is optional and intended for test code only. It should not
    be imported in production code paths.
"""

from fulfillment.testing.conformance import LedgerStoreConformanceSuite

__all__ = ["LedgerStoreConformanceSuite"]
