"""
fulfillment - Transactional order fulfillment ledger for Python.

This library provides:
- Ledger store with optimistic concurrency and In-Memory, SQLite and
  PostgreSQL backends
- Inventory reservations across warehouses
- Coupon authorization with global and per-user caps
- Order orchestration from checkout through payment, shipping and refunds
- Shipment splitting by warehouse
- An order summary view for reporting
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fulfillment-ledger")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from fulfillment.catalog import ProductCatalog
from fulfillment.config import DEFAULT_CONFIG, FulfillmentConfig
from fulfillment.coupons import Authorization, CouponAuthorizer, compute_discount
from fulfillment.exceptions import (
    ConflictError,
    ConsistencyViolation,
    CouponError,
    CouponExhaustedError,
    CouponExpiredError,
    CouponInactiveError,
    CouponNotFoundError,
    CouponPerUserLimitError,
    DuplicateKeyError,
    FulfillmentError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentError,
    PaymentRefundError,
    PaymentTransientError,
    PricingError,
    UnallocatableItemError,
    ValidationError,
)
from fulfillment.inventory import (
    FirstAvailableWarehouse,
    InventoryReservationManager,
    SplitAcrossWarehouses,
    WarehouseSelectionStrategy,
)
from fulfillment.models import (
    Coupon,
    CouponUsage,
    DiscountType,
    InventoryRow,
    LedgerRecord,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    Reservation,
    ReservationState,
    Shipment,
    ShipmentItem,
    ShipmentStatus,
)
from fulfillment.orders import (
    CheckoutRequest,
    FlatRatePricing,
    LineItemRequest,
    OrderOrchestrator,
    PricingPolicy,
)
from fulfillment.payments import (
    ChargeResult,
    InMemoryPaymentGateway,
    PaymentGateway,
    RefundResult,
)
from fulfillment.readmodels import OrderSummary, list_order_summaries, summarize_order
from fulfillment.retry import RetryConfig
from fulfillment.shipments import ShipmentPlan, ShipmentSplitter
from fulfillment.stores import (
    InMemoryLedgerStore,
    LedgerStore,
    LedgerTransaction,
    PostgreSQLLedgerStore,
)

__all__ = [
    "__version__",
    # Configuration
    "DEFAULT_CONFIG",
    "FulfillmentConfig",
    "RetryConfig",
    # Exceptions
    "FulfillmentError",
    "ValidationError",
    "NotFoundError",
    "DuplicateKeyError",
    "ConflictError",
    "ConsistencyViolation",
    "InsufficientStockError",
    "CouponError",
    "CouponNotFoundError",
    "CouponInactiveError",
    "CouponExpiredError",
    "CouponExhaustedError",
    "CouponPerUserLimitError",
    "PaymentError",
    "PaymentDeclinedError",
    "PaymentTransientError",
    "PaymentRefundError",
    "InvalidTransitionError",
    "UnallocatableItemError",
    "PricingError",
    # Records
    "LedgerRecord",
    "Product",
    "InventoryRow",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Reservation",
    "ReservationState",
    "Payment",
    "PaymentStatus",
    "Shipment",
    "ShipmentItem",
    "ShipmentStatus",
    # Stores
    "LedgerStore",
    "LedgerTransaction",
    "InMemoryLedgerStore",
    "PostgreSQLLedgerStore",
    # Services
    "ProductCatalog",
    "InventoryReservationManager",
    "WarehouseSelectionStrategy",
    "FirstAvailableWarehouse",
    "SplitAcrossWarehouses",
    "CouponAuthorizer",
    "Authorization",
    "compute_discount",
    "PaymentGateway",
    "ChargeResult",
    "RefundResult",
    "InMemoryPaymentGateway",
    "OrderOrchestrator",
    "CheckoutRequest",
    "LineItemRequest",
    "PricingPolicy",
    "FlatRatePricing",
    "ShipmentSplitter",
    "ShipmentPlan",
    # Read models
    "OrderSummary",
    "summarize_order",
    "list_order_summaries",
]
