"""
Cascading deletes.

The ledger has no foreign keys, so ownership is enforced here: an owner
is removed together with its dependents, in dependency order, inside the
caller's transaction. Non-owning references are set to None instead.
"""

import logging
from uuid import UUID

from fulfillment.exceptions import ConsistencyViolation
from fulfillment.models import (
    Coupon,
    CouponUsage,
    Order,
    OrderItem,
    Payment,
    Reservation,
    Shipment,
    ShipmentItem,
)
from fulfillment.stores.transaction import LedgerTransaction

logger = logging.getLogger(__name__)


async def delete_order(tx: LedgerTransaction, order_id: UUID) -> Order:
    """
    Delete an order and everything it owns.

    Removes shipment items, shipments, payments, reservations and order
    items, then the order itself. Coupon usages survive with their
    ``order_id`` cleared, so a purged order still counts against the
    coupon's caps.

    Raises:
        NotFoundError: If the order does not exist
        ConsistencyViolation: If stock is still held for the order
    """
    order = await tx.require(Order, order_id, for_update=True)

    reservations = await tx.select_for_update(Reservation, order_id)
    held = [r for r in reservations if r.outstanding > 0]
    if held:
        raise ConsistencyViolation(
            f"Order {order_id} still holds stock in {len(held)} reservation(s); "
            "release it before deleting the order",
            entity=Order.entity_name(),
            key=str(order_id),
        )

    removed = 0
    for model in (ShipmentItem, Shipment, Payment, Reservation, OrderItem):
        for record in await tx.select_for_update(model, order_id):
            tx.delete(record)
            removed += 1

    if order.coupon_id is not None:
        for usage in await tx.select_for_update(
            CouponUsage, order.coupon_id, lambda u: u.order_id == order_id
        ):
            tx.update(usage.evolve(order_id=None))

    tx.delete(order)
    logger.debug("Deleted order %s and %d dependent record(s)", order_id, removed)
    return order


async def delete_coupon(tx: LedgerTransaction, coupon_id: UUID) -> Coupon:
    """
    Delete a coupon and its usage rows.

    Orders that used the coupon are kept; their ``coupon_id`` is set to None.

    Raises:
        NotFoundError: If the coupon does not exist
    """
    coupon = await tx.require(Coupon, coupon_id, for_update=True)

    usages = await tx.select_for_update(CouponUsage, coupon_id)
    detached = 0
    for usage in usages:
        if usage.order_id is not None:
            order = await tx.get(Order, usage.order_id, for_update=True)
            if order is not None and order.coupon_id == coupon_id:
                tx.update(order.evolve(coupon_id=None))
                detached += 1
        tx.delete(usage)

    tx.delete(coupon)
    logger.debug(
        "Deleted coupon %s (%s), %d usage(s), detached %d order(s)",
        coupon.code,
        coupon_id,
        len(usages),
        detached,
    )
    return coupon


__all__ = ["delete_coupon", "delete_order"]
