"""
Order lifecycle for the fulfillment library.

This module provides:
- OrderOrchestrator: create, pay, ship, cancel and purge orders
- CheckoutRequest, LineItemRequest: validated checkout input
- PricingPolicy, FlatRatePricing, compute_totals: order amounts
- ORDER_TRANSITIONS, ensure_transition: the order state machine
"""

from fulfillment.orders.orchestrator import RETRYABLE_PAYMENT_ERRORS, OrderOrchestrator
from fulfillment.orders.pricing import (
    FlatRatePricing,
    PriceBreakdown,
    PricingPolicy,
    compute_totals,
)
from fulfillment.orders.requests import CheckoutRequest, LineItemRequest
from fulfillment.orders.state import (
    ORDER_TRANSITIONS,
    PURGEABLE_STATUSES,
    SHIPMENT_TRANSITIONS,
    can_transition,
    ensure_shipment_transition,
    ensure_transition,
)

__all__ = [
    "OrderOrchestrator",
    "RETRYABLE_PAYMENT_ERRORS",
    "CheckoutRequest",
    "LineItemRequest",
    "FlatRatePricing",
    "PriceBreakdown",
    "PricingPolicy",
    "compute_totals",
    "ORDER_TRANSITIONS",
    "PURGEABLE_STATUSES",
    "SHIPMENT_TRANSITIONS",
    "can_transition",
    "ensure_shipment_transition",
    "ensure_transition",
]
