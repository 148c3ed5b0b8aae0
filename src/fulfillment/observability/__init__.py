"""
Observability utilities for fulfillment.

Provides composition-based tracing and standard attribute names used by
the ledger stores and the fulfillment services.

Note:
    OpenTelemetry is an optional dependency. All utilities in this module
    gracefully handle the case where OpenTelemetry is not installed.
"""

from fulfillment.observability.attributes import (
    ATTR_AMOUNT,
    ATTR_ATTEMPT,
    ATTR_COUPON_CODE,
    ATTR_CURRENCY,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ITEM_COUNT,
    ATTR_ORDER_ID,
    ATTR_ORDER_NUMBER,
    ATTR_PEER_SERVICE,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    ATTR_READ_COUNT,
    ATTR_SHIPMENT_COUNT,
    ATTR_SHIPMENT_ID,
    ATTR_USER_ID,
    ATTR_WAREHOUSE_ID,
    ATTR_WRITE_COUNT,
)
from fulfillment.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from fulfillment.observability.tracing import OTEL_AVAILABLE, should_trace

__all__ = [
    "OTEL_AVAILABLE",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    "ATTR_AMOUNT",
    "ATTR_ATTEMPT",
    "ATTR_COUPON_CODE",
    "ATTR_CURRENCY",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_ITEM_COUNT",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_NUMBER",
    "ATTR_PEER_SERVICE",
    "ATTR_PRODUCT_ID",
    "ATTR_QUANTITY",
    "ATTR_READ_COUNT",
    "ATTR_SHIPMENT_COUNT",
    "ATTR_SHIPMENT_ID",
    "ATTR_USER_ID",
    "ATTR_WAREHOUSE_ID",
    "ATTR_WRITE_COUNT",
]
