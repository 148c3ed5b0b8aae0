"""Payment records."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import Field

from fulfillment.models.base import LedgerRecord


class PaymentStatus(str, Enum):
    """Outcome of a payment attempt."""

    INITIATED = "initiated"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(LedgerRecord):
    """
    One payment attempt or refund for an order.

    An order may have several rows: failed attempts, the successful charge
    and a refund. ``provider_charge_id`` is the idempotency key used to merge
    duplicate success notifications for the same charge.
    """

    order_id: UUID
    amount: Decimal = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    provider: str
    provider_charge_id: str | None = None
    status: PaymentStatus = PaymentStatus.INITIATED
    failure_reason: str | None = None
    attempt: int = Field(default=1, ge=1)
    paid_at: datetime | None = None

    def partition_key(self) -> str:
        return str(self.order_id)
