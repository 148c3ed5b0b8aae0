"""
Standard span attribute names for fulfillment tracing.

Using shared constants keeps attribute names consistent across stores
and services so traces can be filtered reliably.

Example:
    >>> from fulfillment.observability.attributes import ATTR_ORDER_ID
    >>> with tracer.span("fulfillment.orders.pay", {ATTR_ORDER_ID: str(order_id)}):
    ...     ...
"""

# =============================================================================
# Ledger store
# =============================================================================

ATTR_WRITE_COUNT = "fulfillment.ledger.write_count"
"""Number of buffered writes in a commit."""

ATTR_READ_COUNT = "fulfillment.ledger.read_count"
"""Number of validated reads in a commit."""

ATTR_ATTEMPT = "fulfillment.attempt"
"""1-based attempt number of a retried operation."""

# =============================================================================
# Domain
# =============================================================================

ATTR_ORDER_ID = "fulfillment.order.id"
ATTR_ORDER_NUMBER = "fulfillment.order.number"
ATTR_USER_ID = "fulfillment.user.id"
ATTR_PRODUCT_ID = "fulfillment.product.id"
ATTR_WAREHOUSE_ID = "fulfillment.warehouse.id"
ATTR_QUANTITY = "fulfillment.quantity"
ATTR_ITEM_COUNT = "fulfillment.item_count"
ATTR_COUPON_CODE = "fulfillment.coupon.code"
ATTR_AMOUNT = "fulfillment.amount"
ATTR_CURRENCY = "fulfillment.currency"
ATTR_SHIPMENT_ID = "fulfillment.shipment.id"
ATTR_SHIPMENT_COUNT = "fulfillment.shipment.count"

# =============================================================================
# Database (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
ATTR_DB_OPERATION = "db.operation"

# =============================================================================
# Payment gateway (peer service)
# =============================================================================

ATTR_PEER_SERVICE = "peer.service"

__all__ = [
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
