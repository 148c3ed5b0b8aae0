"""Catalog and stock records."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from fulfillment.models.base import LedgerRecord
from fulfillment.types import to_money


class Product(LedgerRecord):
    """
    A sellable product.

    The sku never changes once created. The price may change; order items
    keep their own snapshot so historical orders are unaffected.
    """

    __unique__ = ("sku",)

    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    weight_kg: Decimal | None = Field(default=None, ge=0)
    active: bool = True

    @field_validator("price", mode="before")
    @classmethod
    def _quantize_price(cls, value: Any) -> Any:
        if isinstance(value, (Decimal, int, str)):
            return to_money(value)
        return value


class InventoryRow(LedgerRecord):
    """
    Stock of one product in one warehouse.

    ``quantity`` is the physical count, ``reserved`` the part of it pledged
    to in-flight orders. ``0 <= reserved <= quantity`` must always hold;
    the reservation manager checks it on every mutation.
    """

    __entity__ = "inventory"

    product_id: UUID
    warehouse_id: UUID
    quantity: int = Field(default=0, ge=0)
    reserved: int = Field(default=0, ge=0)

    @staticmethod
    def key_for(product_id: UUID, warehouse_id: UUID) -> str:
        """Composite store key of the (product, warehouse) row."""
        return f"{product_id}:{warehouse_id}"

    @property
    def available(self) -> int:
        """Stock that can still be reserved."""
        return self.quantity - self.reserved

    def ledger_key(self) -> str:
        return self.key_for(self.product_id, self.warehouse_id)

    def partition_key(self) -> str:
        return str(self.product_id)
