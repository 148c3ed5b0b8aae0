"""
Order orchestrator.

Drives an order through its lifecycle:

    pending -> processing -> shipped -> delivered
        \\-> cancelled -> refunded

Each step is one or more short ledger transactions. The payment gateway is
only ever called between transactions, never inside one, so a slow
provider never holds up other checkouts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from fulfillment.catalog import ProductCatalog
from fulfillment.config import DEFAULT_CONFIG, FulfillmentConfig
from fulfillment.coupons import CouponAuthorizer
from fulfillment.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentRefundError,
    PaymentTransientError,
    ValidationError,
)
from fulfillment.inventory import InventoryReservationManager, WarehouseSelectionStrategy
from fulfillment.models import (
    Order,
    OrderItem,
    OrderNumberSequence,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    Shipment,
    ShipmentStatus,
    utcnow,
)
from fulfillment.observability import (
    ATTR_AMOUNT,
    ATTR_ATTEMPT,
    ATTR_CURRENCY,
    ATTR_ITEM_COUNT,
    ATTR_ORDER_ID,
    ATTR_ORDER_NUMBER,
    ATTR_PEER_SERVICE,
    ATTR_SHIPMENT_ID,
    ATTR_USER_ID,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from fulfillment.orders.pricing import FlatRatePricing, PricingPolicy, compute_totals
from fulfillment.orders.requests import CheckoutRequest
from fulfillment.orders.state import (
    PURGEABLE_STATUSES,
    ensure_shipment_transition,
    ensure_transition,
)
from fulfillment.payments import ChargeResult, PaymentGateway, RefundResult
from fulfillment.retry import TRANSIENT_EXCEPTIONS, RetryError, calculate_backoff, retry_async
from fulfillment.shipments import ShipmentSplitter
from fulfillment.stores import LedgerStore, LedgerTransaction, delete_order
from fulfillment.types import WarehouseAvailability

logger = logging.getLogger(__name__)

RETRYABLE_PAYMENT_ERRORS: tuple[type[Exception], ...] = (
    PaymentTransientError,
    *TRANSIENT_EXCEPTIONS,
)


class OrderOrchestrator:
    """
    Creates, pays, ships and cancels orders.

    The orchestrator owns no state of its own: everything it decides is
    written to the ledger, so any instance (or process) can pick up an
    order where another left it.

    Args:
        store: Ledger store
        gateway: Payment provider adapter
        catalog: Product catalog (created on ``store`` if omitted)
        inventory: Reservation manager (created on ``store`` if omitted)
        coupons: Coupon authorizer (created on ``store`` if omitted)
        pricing: Shipping and tax policy (free shipping, no tax if omitted)
        splitter: Shipment splitter (created on ``inventory`` if omitted)
        config: Retry, timeout and currency settings
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces

    Example:
        >>> orchestrator = OrderOrchestrator(store, InMemoryPaymentGateway())
        >>> order = await orchestrator.checkout(request)
        >>> order.status
        <OrderStatus.PROCESSING: 'processing'>
        >>> await orchestrator.ship(order.id)
    """

    def __init__(
        self,
        store: LedgerStore,
        gateway: PaymentGateway,
        *,
        catalog: ProductCatalog | None = None,
        inventory: InventoryReservationManager | None = None,
        coupons: CouponAuthorizer | None = None,
        pricing: PricingPolicy | None = None,
        splitter: ShipmentSplitter | None = None,
        config: FulfillmentConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._config = config or DEFAULT_CONFIG
        self.catalog = catalog or ProductCatalog(store)
        self.inventory = inventory or InventoryReservationManager(store, tracer=self._tracer)
        self.coupons = coupons or CouponAuthorizer(store, tracer=self._tracer)
        self.pricing = pricing or FlatRatePricing()
        self.splitter = splitter or ShipmentSplitter(self.inventory, tracer=self._tracer)

    @property
    def config(self) -> FulfillmentConfig:
        return self._config

    async def _run(self, work: Any, name: str) -> Any:
        return await self._store.run_in_transaction(
            work, retry=self._config.conflict_retry, name=name
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: UUID) -> Order:
        """
        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self._store.get(Order, order_id)
        if order is None:
            raise NotFoundError(Order.entity_name(), order_id)
        return order

    async def get_items(self, order_id: UUID) -> list[OrderItem]:
        return await self._store.list_partition(OrderItem, order_id)

    async def get_payments(self, order_id: UUID) -> list[Payment]:
        return await self._store.list_partition(Payment, order_id)

    async def get_shipments(self, order_id: UUID) -> list[Shipment]:
        return await self._store.list_partition(Shipment, order_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        request: CheckoutRequest | Mapping[str, Any],
        *,
        strategy: WarehouseSelectionStrategy | None = None,
    ) -> Order:
        """
        Create a pending order, reserving its stock and spending its coupon.

        Everything happens in one transaction: if any item cannot be
        reserved or the coupon is rejected, nothing is written and no
        reservation taken for earlier items survives.

        Raises:
            ValidationError: Malformed request, unknown or inactive product
            InsufficientStockError: An item cannot be reserved
            CouponError: The coupon is rejected (see subclasses)
            ConflictError: Conflicts persisted past the retry budget
        """
        if not isinstance(request, CheckoutRequest):
            request = CheckoutRequest.parse(dict(request))

        async def work(tx: LedgerTransaction) -> Order:
            return await self._create_order(tx, request, strategy)

        with self._tracer.span(
            "fulfillment.orders.create",
            {ATTR_USER_ID: str(request.user_id), ATTR_ITEM_COUNT: len(request.items)},
        ):
            order = await self._run(work, "orders.create")

        logger.info(
            "Created order %s (%s) for user %s: total %s %s",
            order.order_number,
            order.id,
            order.user_id,
            order.total_amount,
            order.currency,
        )
        return order

    async def _create_order(
        self,
        tx: LedgerTransaction,
        request: CheckoutRequest,
        strategy: WarehouseSelectionStrategy | None,
    ) -> Order:
        order_id = uuid4()
        placed_at = utcnow()

        items: list[OrderItem] = []
        for line in request.items:
            product = await tx.get(Product, line.product_id)
            if product is None:
                raise ValidationError(f"unknown product {line.product_id}", field="items")
            if not product.active:
                raise ValidationError(f"product {product.sku} is not for sale", field="items")

            order_item_id = uuid4()
            reservations = await self.inventory.reserve_item(
                tx,
                order_id=order_id,
                order_item_id=order_item_id,
                product_id=product.id,
                quantity=line.quantity,
                strategy=strategy,
            )
            items.append(
                OrderItem(
                    id=order_item_id,
                    order_id=order_id,
                    product_id=product.id,
                    sku=product.sku,
                    product_name=product.name,
                    unit_price=product.price,
                    quantity=line.quantity,
                    line_total=product.price * line.quantity,
                    warehouse_id=reservations[0].warehouse_id,
                )
            )

        subtotal = sum((item.line_total for item in items), Decimal("0.00"))
        discount = Decimal("0.00")
        coupon_id: UUID | None = None
        if request.coupon_code is not None:
            auth = await self.coupons.authorize_and_record(
                request.coupon_code,
                request.user_id,
                subtotal,
                order_id=order_id,
                tx=tx,
            )
            discount = auth.discount
            coupon_id = auth.coupon.id

        totals = compute_totals(subtotal, discount, self.pricing)
        order_number = await self._next_order_number(tx, placed_at)

        order = tx.insert(
            Order(
                id=order_id,
                user_id=request.user_id,
                order_number=order_number,
                currency=self._config.currency,
                subtotal=totals.subtotal,
                shipping_amount=totals.shipping,
                tax_amount=totals.tax,
                discount_amount=totals.discount,
                total_amount=totals.total,
                coupon_id=coupon_id,
                shipping_address_id=request.shipping_address_id,
                billing_address_id=request.billing_address_id,
                placed_at=placed_at,
            )
        )
        for item in items:
            tx.insert(item)
        return order

    async def _next_order_number(self, tx: LedgerTransaction, placed_at: datetime) -> str:
        name = f"{self._config.order_number_prefix}-{placed_at:%Y%m%d}"
        current = await tx.get_for_update(OrderNumberSequence, name)
        if current is None:
            sequence = await tx.compare_and_swap(
                OrderNumberSequence, name, 0, OrderNumberSequence(name=name, last_value=1)
            )
        else:
            sequence = await tx.compare_and_swap(
                OrderNumberSequence,
                name,
                current.version,
                current.evolve(last_value=current.last_value + 1),
            )
        return f"{name}-{sequence.last_value:04d}"

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def pay(self, order_id: UUID) -> Order:
        """
        Charge a pending order and move it to processing.

        Each attempt is recorded as a Payment row. Transient failures and
        timeouts are retried with backoff; a decline, or running out of
        retries, cancels the order and releases its stock.

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the order is not pending
            PaymentDeclinedError: If the charge was declined or never succeeded
        """
        order = await self.get_order(order_id)
        ensure_transition(order, OrderStatus.PROCESSING)
        retry = self._config.payment_retry

        for attempt in range(1, retry.max_attempts + 1):
            payment = await self._begin_payment(order_id, attempt)
            try:
                result = await self._charge(order, attempt)
            except PaymentDeclinedError as e:
                await self._fail_payment(payment, e.reason)
                await self._cancel_unpaid(order_id, e.reason)
                raise PaymentDeclinedError(e.reason, order_id) from e
            except RETRYABLE_PAYMENT_ERRORS as e:
                reason = str(e) or type(e).__name__
                await self._fail_payment(payment, reason)
                if attempt <= retry.max_retries:
                    delay = calculate_backoff(attempt - 1, retry)
                    logger.warning(
                        "Payment attempt %d for order %s failed (%s), retrying in %.2fs",
                        attempt,
                        order.order_number,
                        reason,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                reason = f"no successful charge after {attempt} attempt(s): {reason}"
                await self._cancel_unpaid(order_id, reason)
                raise PaymentDeclinedError(reason, order_id) from e
            return await self.confirm_payment(order_id, result, payment_id=payment.id)

        raise AssertionError("unreachable")

    async def _charge(self, order: Order, attempt: int) -> ChargeResult:
        with self._tracer.span_with_kind(
            "fulfillment.payments.charge",
            SpanKindEnum.CLIENT,
            {
                ATTR_ORDER_ID: str(order.id),
                ATTR_ORDER_NUMBER: order.order_number,
                ATTR_AMOUNT: str(order.total_amount),
                ATTR_CURRENCY: order.currency,
                ATTR_ATTEMPT: attempt,
                ATTR_PEER_SERVICE: self._gateway.name,
            },
        ):
            return await asyncio.wait_for(
                self._gateway.charge(order.total_amount, order.currency, order.order_number),
                timeout=self._config.payment_timeout,
            )

    async def _begin_payment(self, order_id: UUID, attempt: int) -> Payment:
        async def work(tx: LedgerTransaction) -> Payment:
            order = await tx.require(Order, order_id, for_update=True)
            ensure_transition(order, OrderStatus.PROCESSING)
            return tx.insert(
                Payment(
                    order_id=order_id,
                    amount=order.total_amount,
                    currency=order.currency,
                    provider=self._config.payment_provider,
                    status=PaymentStatus.INITIATED,
                    attempt=attempt,
                )
            )

        return await self._run(work, "orders.begin_payment")

    async def _fail_payment(self, payment: Payment, reason: str) -> None:
        async def work(tx: LedgerTransaction) -> None:
            current = await tx.require(Payment, payment.id, for_update=True)
            tx.update(current.evolve(status=PaymentStatus.FAILED, failure_reason=reason))

        await self._run(work, "orders.fail_payment")

    async def _cancel_unpaid(self, order_id: UUID, reason: str) -> None:
        async def work(tx: LedgerTransaction) -> Order:
            order = await tx.require(Order, order_id, for_update=True)
            if order.status is not OrderStatus.PENDING:
                return order
            await self.inventory.release_order(order_id, tx=tx)
            return tx.update(order.evolve(status=OrderStatus.CANCELLED))

        order = await self._run(work, "orders.cancel_unpaid")
        logger.warning("Order %s cancelled after payment failure: %s", order.order_number, reason)

    async def confirm_payment(
        self,
        order_id: UUID,
        result: ChargeResult,
        *,
        payment_id: UUID | None = None,
    ) -> Order:
        """
        Record a successful charge and move the order to processing.

        Idempotent on ``result.charge_id``: a second notification of the same
        charge changes nothing. A charge that lands after the order left
        pending (cancelled meanwhile) is refunded straight away.

        Raises:
            InvalidTransitionError: If the order was no longer pending; the
                charge has been refunded
            PaymentRefundError: If that refund failed
        """

        async def work(tx: LedgerTransaction) -> tuple[Order, Payment | None, bool]:
            order = await tx.require(Order, order_id, for_update=True)
            payments = await tx.select_for_update(Payment, order_id)
            if any(
                p.provider_charge_id == result.charge_id and p.status is not PaymentStatus.INITIATED
                for p in payments
            ):
                return order, None, False

            succeeded = self._succeeded(order, payments, result, payment_id)
            if succeeded.version == 0:
                tx.insert(succeeded)
            else:
                tx.update(succeeded)

            if order.status is not OrderStatus.PENDING:
                return order, succeeded, True
            ensure_transition(order, OrderStatus.PROCESSING)
            return tx.update(order.evolve(status=OrderStatus.PROCESSING)), succeeded, False

        order, payment, orphaned = await self._run(work, "orders.confirm_payment")

        if payment is None:
            logger.debug("Duplicate notification for charge %s ignored", result.charge_id)
            return order

        if orphaned:
            logger.warning(
                "Charge %s arrived for order %s in status %s; refunding",
                result.charge_id,
                order.order_number,
                order.status.value,
            )
            await self._refund(order, payment)
            raise InvalidTransitionError(
                "Order", order.id, order.status.value, OrderStatus.PROCESSING.value
            )

        logger.info("Order %s paid (charge %s)", order.order_number, result.charge_id)
        return order

    def _succeeded(
        self,
        order: Order,
        payments: list[Payment],
        result: ChargeResult,
        payment_id: UUID | None,
    ) -> Payment:
        changes: dict[str, Any] = {
            "status": PaymentStatus.SUCCEEDED,
            "provider_charge_id": result.charge_id,
            "amount": result.amount,
            "failure_reason": None,
            "paid_at": utcnow(),
        }
        for payment in payments:
            if payment.id == payment_id:
                return payment.evolve(**changes)
        return Payment(
            order_id=order.id,
            currency=result.currency,
            provider=self._config.payment_provider,
            attempt=len(payments) + 1,
            **changes,
        )

    async def checkout(
        self,
        request: CheckoutRequest | Mapping[str, Any],
        *,
        strategy: WarehouseSelectionStrategy | None = None,
    ) -> Order:
        """``create_order`` followed by ``pay``."""
        order = await self.create_order(request, strategy=strategy)
        return await self.pay(order.id)

    # ------------------------------------------------------------------
    # Shipping
    # ------------------------------------------------------------------

    async def ship(
        self,
        order_id: UUID,
        availability: WarehouseAvailability | None = None,
        *,
        carrier: str | None = None,
        tracking_numbers: dict[UUID, str] | None = None,
        allow_partial: bool = False,
    ) -> list[Shipment]:
        """
        Ship the unshipped part of a paid order.

        Creates one shipment per warehouse and commits the matching
        reservations, so physical stock is decremented now. The order moves
        to shipped once every item is fully covered by shipments.

        Args:
            order_id: Order to ship
            availability: warehouse_id -> product_id -> units that can leave
                now (None: everything reserved can ship)
            carrier: Carrier recorded on the shipments
            tracking_numbers: warehouse_id -> tracking number
            allow_partial: Ship what is possible instead of failing

        Raises:
            InvalidTransitionError: If the order is not processing
            UnallocatableItemError: If an item cannot be covered and
                ``allow_partial`` is False
        """

        async def work(tx: LedgerTransaction) -> tuple[Order, list[Shipment]]:
            order = await tx.require(Order, order_id, for_update=True)
            ensure_transition(order, OrderStatus.SHIPPED)

            plan = await self.splitter.allocate(
                tx, order_id, availability, allow_partial=allow_partial
            )
            shipments = await self.splitter.apply(
                tx, plan, carrier=carrier, tracking_numbers=tracking_numbers
            )

            shipped = await self.splitter.shipped_quantities(tx, order_id)
            items = await tx.select(OrderItem, order_id)
            if all(shipped.get(item.id, 0) >= item.quantity for item in items):
                order = tx.update(order.evolve(status=OrderStatus.SHIPPED))
            return order, shipments

        with self._tracer.span("fulfillment.orders.ship", {ATTR_ORDER_ID: str(order_id)}):
            order, shipments = await self._run(work, "orders.ship")

        logger.info(
            "Order %s: %d shipment(s) created, status %s",
            order.order_number,
            len(shipments),
            order.status.value,
        )
        return shipments

    async def advance_shipment(self, shipment_id: UUID, status: ShipmentStatus) -> Shipment:
        """
        Move a shipment along its carrier states.

        When every shipment of a shipped order is delivered, the order
        becomes delivered.

        Raises:
            NotFoundError: If the shipment does not exist
            InvalidTransitionError: If the shipment cannot move to ``status``
        """

        async def work(tx: LedgerTransaction) -> Shipment:
            shipment = await tx.require(Shipment, shipment_id, for_update=True)
            ensure_shipment_transition(shipment, status)
            changes: dict[str, Any] = {"status": status}
            if status is ShipmentStatus.DELIVERED:
                changes["delivered_at"] = utcnow()
            updated = tx.update(shipment.evolve(**changes))

            if status is ShipmentStatus.DELIVERED:
                order = await tx.require(Order, shipment.order_id, for_update=True)
                siblings = await tx.select_for_update(Shipment, shipment.order_id)
                if order.status is OrderStatus.SHIPPED and all(
                    s.status is ShipmentStatus.DELIVERED for s in siblings
                ):
                    tx.update(order.evolve(status=OrderStatus.DELIVERED))
                    logger.info("Order %s delivered", order.order_number)
            return updated

        with self._tracer.span(
            "fulfillment.orders.advance_shipment",
            {ATTR_SHIPMENT_ID: str(shipment_id)},
        ):
            return await self._run(work, "orders.advance_shipment")

    async def mark_delivered(self, shipment_id: UUID) -> Shipment:
        """Shorthand for ``advance_shipment(shipment_id, ShipmentStatus.DELIVERED)``."""
        return await self.advance_shipment(shipment_id, ShipmentStatus.DELIVERED)

    # ------------------------------------------------------------------
    # Cancellation and refunds
    # ------------------------------------------------------------------

    async def cancel(self, order_id: UUID, *, reason: str | None = None) -> Order:
        """
        Cancel an order that has not shipped.

        Releases every reservation still held. If the order was paid, the
        charge is refunded and the order ends up refunded; otherwise it ends
        up cancelled. Cancelling an order that is already cancelled retries
        a refund that failed earlier and is otherwise a no-op.

        Raises:
            InvalidTransitionError: If any of the order has shipped, including
                a partial shipment of an order still processing
            PaymentRefundError: If the refund failed; the order stays cancelled
                and a later ``cancel`` retries it
        """

        async def work(tx: LedgerTransaction) -> tuple[Order, Payment | None]:
            order = await tx.require(Order, order_id, for_update=True)
            if order.status is OrderStatus.REFUNDED:
                return order, None
            if order.status is not OrderStatus.CANCELLED:
                ensure_transition(order, OrderStatus.CANCELLED)
                if await self.splitter.shipped_quantities(tx, order_id):
                    raise InvalidTransitionError(
                        "Order",
                        order.id,
                        f"{order.status.value} (partially shipped)",
                        OrderStatus.CANCELLED.value,
                    )
                await self.inventory.release_order(order_id, tx=tx)
                order = tx.update(order.evolve(status=OrderStatus.CANCELLED))
            payments = await tx.select(Payment, order_id)
            return order, self._unrefunded_charge(payments)

        with self._tracer.span("fulfillment.orders.cancel", {ATTR_ORDER_ID: str(order_id)}):
            order, charge = await self._run(work, "orders.cancel")

        logger.info(
            "Order %s cancelled%s",
            order.order_number,
            f": {reason}" if reason else "",
        )
        if charge is None:
            return order
        return await self._refund(order, charge)

    @staticmethod
    def _unrefunded_charge(payments: list[Payment]) -> Payment | None:
        refunded = {
            p.provider_charge_id for p in payments if p.status is PaymentStatus.REFUNDED
        }
        for payment in payments:
            if (
                payment.status is PaymentStatus.SUCCEEDED
                and payment.provider_charge_id not in refunded
            ):
                return payment
        return None

    async def _refund(self, order: Order, charge: Payment) -> Order:
        charge_id = charge.provider_charge_id
        assert charge_id is not None

        async def call() -> RefundResult:
            with self._tracer.span_with_kind(
                "fulfillment.payments.refund",
                SpanKindEnum.CLIENT,
                {
                    ATTR_ORDER_ID: str(order.id),
                    ATTR_AMOUNT: str(charge.amount),
                    ATTR_PEER_SERVICE: self._gateway.name,
                },
            ):
                return await asyncio.wait_for(
                    self._gateway.refund(charge_id, charge.amount),
                    timeout=self._config.payment_timeout,
                )

        try:
            await retry_async(
                call,
                config=self._config.payment_retry,
                retryable_exceptions=RETRYABLE_PAYMENT_ERRORS,
                operation_name=f"refund {charge_id}",
            )
        except (RetryError, PaymentDeclinedError) as e:
            cause = e.last_error if isinstance(e, RetryError) else e
            logger.error(
                "Refund of charge %s for order %s failed: %s",
                charge_id,
                order.order_number,
                cause,
                extra={"error_type": type(cause).__name__},
            )
            raise PaymentRefundError(charge_id, str(cause), order.id) from cause

        async def work(tx: LedgerTransaction) -> Order:
            current = await tx.require(Order, order.id, for_update=True)
            tx.insert(
                Payment(
                    order_id=order.id,
                    amount=charge.amount,
                    currency=charge.currency,
                    provider=charge.provider,
                    provider_charge_id=charge_id,
                    status=PaymentStatus.REFUNDED,
                    attempt=charge.attempt,
                )
            )
            if current.status is OrderStatus.CANCELLED:
                ensure_transition(current, OrderStatus.REFUNDED)
                return tx.update(current.evolve(status=OrderStatus.REFUNDED))
            return current

        refunded = await self._run(work, "orders.record_refund")
        logger.info(
            "Refunded %s %s for order %s (charge %s)",
            charge.amount,
            charge.currency,
            order.order_number,
            charge_id,
        )
        return refunded

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def purge_order(self, order_id: UUID) -> Order:
        """
        Delete a finished order and everything it owns.

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the order is still in flight
        """

        async def work(tx: LedgerTransaction) -> Order:
            order = await tx.require(Order, order_id, for_update=True)
            if order.status not in PURGEABLE_STATUSES:
                raise InvalidTransitionError("Order", order.id, order.status.value, "purged")
            return await delete_order(tx, order_id)

        order = await self._run(work, "orders.purge")
        logger.info("Purged order %s (%s)", order.order_number, order.id)
        return order


__all__ = ["OrderOrchestrator", "RETRYABLE_PAYMENT_ERRORS"]
