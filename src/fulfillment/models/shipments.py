"""Shipment records."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field

from fulfillment.models.base import LedgerRecord


class ShipmentStatus(str, Enum):
    """Carrier-facing state of a shipment."""

    PENDING = "pending"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    RETURNED = "returned"


class Shipment(LedgerRecord):
    """A parcel leaving a single warehouse for one order."""

    order_id: UUID
    warehouse_id: UUID
    status: ShipmentStatus = ShipmentStatus.PENDING
    carrier: str | None = Field(default=None, max_length=100)
    tracking_number: str | None = Field(default=None, max_length=255)
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None

    def partition_key(self) -> str:
        return str(self.order_id)


class ShipmentItem(LedgerRecord):
    """Quantity of one order item carried by one shipment."""

    order_id: UUID
    shipment_id: UUID
    order_item_id: UUID
    quantity: int = Field(..., gt=0)

    def partition_key(self) -> str:
        return str(self.order_id)
