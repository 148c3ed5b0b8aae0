"""
Ledger records for the fulfillment engine.

Every persisted entity is an immutable pydantic model deriving from
LedgerRecord. Enumerated columns are closed str Enums.
"""

from fulfillment.models.base import LedgerRecord, utcnow
from fulfillment.models.catalog import InventoryRow, Product
from fulfillment.models.coupons import Coupon, CouponUsage, DiscountType
from fulfillment.models.orders import (
    Order,
    OrderItem,
    OrderNumberSequence,
    OrderStatus,
    Reservation,
    ReservationState,
)
from fulfillment.models.payments import Payment, PaymentStatus
from fulfillment.models.shipments import Shipment, ShipmentItem, ShipmentStatus

__all__ = [
    "LedgerRecord",
    "utcnow",
    "Product",
    "InventoryRow",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderNumberSequence",
    "OrderStatus",
    "Reservation",
    "ReservationState",
    "Payment",
    "PaymentStatus",
    "Shipment",
    "ShipmentItem",
    "ShipmentStatus",
]
