"""
Read-only views over the fulfillment ledger.

Key Components:
    OrderSummary: Per-order totals and item count for reporting
    summarize_order: Summary of a single order
    list_order_summaries: Summaries of a customer's orders
"""

from fulfillment.readmodels.order_summary import (
    OrderSummary,
    list_order_summaries,
    summarize_order,
)

__all__ = ["OrderSummary", "list_order_summaries", "summarize_order"]
