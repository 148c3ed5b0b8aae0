"""Coupon records."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Self
from uuid import UUID

from pydantic import AwareDatetime, Field, field_validator, model_validator

from fulfillment.models.base import LedgerRecord, utcnow
from fulfillment.types import to_money


class DiscountType(str, Enum):
    """How a coupon's discount_value is interpreted."""

    PERCENT = "percent"
    FIXED = "fixed"


class Coupon(LedgerRecord):
    """
    A discount code.

    Attributes:
        code: Unique code typed by the customer
        discount_type: PERCENT (0-100) or FIXED (monetary amount)
        discount_value: Percentage or amount, depending on discount_type
        uses_allowed: Global cap on usages (None = unlimited)
        uses_per_user: Per-user cap on usages (None = unlimited)
        starts_at: Start of the activity window (None = open, timezone-aware)
        expires_at: End of the activity window (None = open, timezone-aware)
        active: Manual on/off switch
    """

    __unique__ = ("code",)

    code: str = Field(..., min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=255)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    uses_allowed: int | None = Field(default=None, ge=0)
    uses_per_user: int | None = Field(default=None, ge=0)
    starts_at: AwareDatetime | None = None
    expires_at: AwareDatetime | None = None
    active: bool = True

    @field_validator("discount_value", mode="before")
    @classmethod
    def _quantize_value(cls, value: Any) -> Any:
        if isinstance(value, (Decimal, int, str)):
            return to_money(value)
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> Self:
        if self.discount_type is DiscountType.PERCENT and self.discount_value > 100:
            raise ValueError("percent discount_value must be within [0, 100]")
        if self.starts_at and self.expires_at and self.expires_at < self.starts_at:
            raise ValueError("expires_at must not be before starts_at")
        return self

    def is_within_window(self, at: datetime) -> bool:
        """Whether ``at`` falls inside [starts_at, expires_at]."""
        if self.starts_at is not None and at < self.starts_at:
            return False
        if self.expires_at is not None and at > self.expires_at:
            return False
        return True


class CouponUsage(LedgerRecord):
    """
    Immutable fact that a user consumed one use of a coupon.

    Usages are partitioned by coupon so both caps are computed by counting
    the partition inside the transaction that inserts the new usage.
    """

    coupon_id: UUID
    user_id: UUID
    order_id: UUID | None = None
    used_at: datetime = Field(default_factory=utcnow)

    def partition_key(self) -> str:
        return str(self.coupon_id)
