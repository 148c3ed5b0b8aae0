"""
Order summary view.

A denormalized, read-only view of an order for reporting: the order's
monetary totals next to how many item rows it has. Summaries are derived
from the ledger on demand and never stored, so they cannot drift from the
orders they describe.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from fulfillment.exceptions import NotFoundError
from fulfillment.models import Order, OrderItem, OrderStatus
from fulfillment.stores import LedgerStore, LedgerTransaction


class OrderSummary(BaseModel):
    """
    One row of the order summary view.

    Attributes:
        order_id: Order the row describes
        order_number: Human readable order number
        user_id: Customer who placed the order
        status: Current order status
        placed_at: When the order was created
        currency: ISO currency code of the amounts
        subtotal: Sum of line totals
        shipping_amount: Shipping charged
        tax_amount: Tax charged
        discount_amount: Coupon discount applied
        total_amount: Amount charged to the customer
        item_count: Number of order item rows (not units)

    Example:
        >>> summary = await summarize_order(store, order.id)
        >>> summary.item_count, summary.total_amount
        (2, Decimal('45.00'))
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    user_id: UUID
    status: OrderStatus
    placed_at: datetime
    currency: str
    subtotal: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    item_count: int

    @classmethod
    def from_order(cls, order: Order, item_count: int) -> "OrderSummary":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            placed_at=order.placed_at,
            currency=order.currency,
            subtotal=order.subtotal,
            shipping_amount=order.shipping_amount,
            tax_amount=order.tax_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            item_count=item_count,
        )


async def summarize_order(store: LedgerStore, order_id: UUID) -> OrderSummary:
    """
    Build the summary of one order from a consistent snapshot.

    Raises:
        NotFoundError: If the order does not exist
    """

    async def work(tx: LedgerTransaction) -> OrderSummary:
        order = await tx.get(Order, order_id)
        if order is None:
            raise NotFoundError(Order.entity_name(), order_id)
        return OrderSummary.from_order(order, await tx.count(OrderItem, order_id))

    return await store.run_in_transaction(work, name="readmodels.summarize_order")


async def list_order_summaries(
    store: LedgerStore,
    user_id: UUID,
    *,
    status: OrderStatus | None = None,
) -> list[OrderSummary]:
    """
    Summaries of a customer's orders, newest first.

    Args:
        store: Ledger store to read from
        user_id: Customer whose orders are listed
        status: Only include orders in this status
    """

    async def work(tx: LedgerTransaction) -> list[OrderSummary]:
        orders = await tx.select(Order, user_id)
        if status is not None:
            orders = [o for o in orders if o.status is status]
        summaries = [
            OrderSummary.from_order(order, await tx.count(OrderItem, order.id))
            for order in orders
        ]
        summaries.sort(key=lambda s: (s.placed_at, s.order_number), reverse=True)
        return summaries

    return await store.run_in_transaction(work, name="readmodels.list_order_summaries")


__all__ = ["OrderSummary", "list_order_summaries", "summarize_order"]
