"""Order, order item and reservation records."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import Field

from fulfillment.models.base import LedgerRecord, utcnow


class OrderStatus(str, Enum):
    """Lifecycle states of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ReservationState(str, Enum):
    """
    State of a stock reservation.

    HELD stock is pledged but still physically present, COMMITTED stock
    has left the warehouse, RELEASED stock went back to available.
    """

    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"


class Order(LedgerRecord):
    """
    A customer order.

    Monetary fields are fixed when the order is created:
    ``total_amount = subtotal + shipping_amount + tax_amount - discount_amount``.
    Only the status moves afterwards, through the orchestrator.
    """

    __unique__ = ("order_number",)

    user_id: UUID
    order_number: str = Field(..., min_length=1, max_length=50)
    status: OrderStatus = OrderStatus.PENDING
    currency: str = Field(default="USD", min_length=3, max_length=3)
    subtotal: Decimal = Field(..., ge=0)
    shipping_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    total_amount: Decimal = Field(..., ge=0)
    coupon_id: UUID | None = None
    shipping_address_id: UUID | None = None
    billing_address_id: UUID | None = None
    placed_at: datetime = Field(default_factory=utcnow)

    def partition_key(self) -> str:
        return str(self.user_id)


class OrderItem(LedgerRecord):
    """
    One line of an order.

    sku, product_name and unit_price are snapshots taken at order time.
    """

    order_id: UUID
    product_id: UUID
    sku: str
    product_name: str
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    line_total: Decimal = Field(..., ge=0)
    warehouse_id: UUID | None = None

    def partition_key(self) -> str:
        return str(self.order_id)


class Reservation(LedgerRecord):
    """
    Stock held for one order item in one warehouse.

    The state flag, not quantity arithmetic, decides whether a release
    still has anything to give back.
    """

    order_id: UUID
    order_item_id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity: int = Field(..., gt=0)
    committed_quantity: int = Field(default=0, ge=0)
    state: ReservationState = ReservationState.HELD

    @property
    def outstanding(self) -> int:
        """Quantity still held (reserved but neither committed nor released)."""
        if self.state is not ReservationState.HELD:
            return 0
        return self.quantity - self.committed_quantity

    def partition_key(self) -> str:
        return str(self.order_id)


class OrderNumberSequence(LedgerRecord):
    """Per-day counter used to allocate human readable order numbers."""

    name: str
    last_value: int = Field(default=0, ge=0)

    def ledger_key(self) -> str:
        return self.name
