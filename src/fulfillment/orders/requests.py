"""Checkout request models."""

from typing import Any, Self
from uuid import UUID

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from fulfillment.exceptions import ValidationError


class LineItemRequest(BaseModel):
    """One product and quantity asked for at checkout."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = Field(..., gt=0)


class CheckoutRequest(BaseModel):
    """
    Everything needed to create an order.

    Address ids are validated by the address service upstream; they are
    stored as opaque references.

    Example:
        >>> request = CheckoutRequest(
        ...     user_id=user_id,
        ...     items=[LineItemRequest(product_id=chair.id, quantity=2)],
        ...     coupon_code="SAVE10",
        ... )
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    items: list[LineItemRequest] = Field(..., min_length=1)
    coupon_code: str | None = Field(default=None, min_length=1, max_length=50)
    shipping_address_id: UUID | None = None
    billing_address_id: UUID | None = None

    @model_validator(mode="after")
    def _one_line_per_product(self) -> Self:
        seen: set[UUID] = set()
        for item in self.items:
            if item.product_id in seen:
                raise ValueError(f"product {item.product_id} appears on more than one line")
            seen.add(item.product_id)
        return self

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "CheckoutRequest":
        """
        Build a request from untrusted input.

        Raises:
            ValidationError: If the input is malformed
        """
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e), field="request") from e


__all__ = ["CheckoutRequest", "LineItemRequest"]
