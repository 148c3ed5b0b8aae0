"""
Coupon authorizer.

Validates a coupon for a checkout and consumes one use of it. Usage caps
are computed by counting CouponUsage rows, and the count is taken "for
update" in the same transaction that inserts the new usage. Two checkouts
racing for the last use of a coupon therefore cannot both commit: the
second one conflicts, re-runs, counts the first one's usage and is
rejected with CouponExhaustedError.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import pydantic

from fulfillment.exceptions import (
    CouponExhaustedError,
    CouponExpiredError,
    CouponInactiveError,
    CouponNotFoundError,
    CouponPerUserLimitError,
    DuplicateKeyError,
    ValidationError,
)
from fulfillment.models import Coupon, CouponUsage, DiscountType, utcnow
from fulfillment.observability import (
    ATTR_COUPON_CODE,
    ATTR_USER_ID,
    Tracer,
    create_tracer,
)
from fulfillment.stores import LedgerStore, LedgerTransaction
from fulfillment.types import CENT, to_money

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class Authorization:
    """A coupon accepted for a subtotal, and the discount it grants."""

    coupon: Coupon
    discount: Decimal
    usage: CouponUsage | None = None


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount a coupon grants on ``subtotal``.

    PERCENT coupons take ``discount_value`` percent of the subtotal; FIXED
    coupons take ``discount_value``. Either way the discount never exceeds
    the subtotal, so the discounted amount is never negative.

    Example:
        >>> compute_discount(save10, Decimal("100.00"))
        Decimal('10.00')
    """
    if coupon.discount_type is DiscountType.PERCENT:
        discount = (subtotal * coupon.discount_value / Decimal(100)).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
    else:
        discount = coupon.discount_value
    return to_money(max(Decimal(0), min(discount, subtotal)))


class CouponAuthorizer:
    """
    Creates coupons and authorizes their use.

    Args:
        store: Ledger store holding coupons and usages
        clock: Returns the current time (injected for tests)
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces

    Example:
        >>> authorizer = CouponAuthorizer(store)
        >>> await authorizer.create_coupon("SAVE10", DiscountType.PERCENT, 10, uses_allowed=1)
        >>> async with store.transaction() as tx:
        ...     auth = await authorizer.authorize_and_record(
        ...         "SAVE10", user_id, Decimal("100.00"), tx=tx
        ...     )
        >>> auth.discount
        Decimal('10.00')
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        clock: Clock | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._clock = clock or utcnow
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def create_coupon(
        self,
        code: str,
        discount_type: DiscountType,
        discount_value: Decimal | int | str,
        *,
        description: str | None = None,
        uses_allowed: int | None = None,
        uses_per_user: int | None = None,
        starts_at: datetime | None = None,
        expires_at: datetime | None = None,
        active: bool = True,
        tx: LedgerTransaction | None = None,
    ) -> Coupon:
        """
        Create a coupon.

        Raises:
            ValidationError: If the percent is outside [0, 100], a value or
                cap is negative, a window bound is a naive datetime, or the
                window ends before it starts
            DuplicateKeyError: If the code is taken
        """
        try:
            coupon = Coupon(
                code=code,
                description=description,
                discount_type=discount_type,
                discount_value=discount_value,
                uses_allowed=uses_allowed,
                uses_per_user=uses_per_user,
                starts_at=starts_at,
                expires_at=expires_at,
                active=active,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e), field="coupon") from e

        async def work(tx: LedgerTransaction) -> Coupon:
            if await tx.find_unique(Coupon, "code", code) is not None:
                raise DuplicateKeyError(Coupon.entity_name(), "code", code)
            return tx.insert(coupon)

        created = await self._store.in_transaction(tx, work, name="coupons.create")
        logger.info("Created coupon %s (%s)", created.code, created.id)
        return created

    async def get_by_code(self, code: str) -> Coupon | None:
        async with self._store.transaction() as tx:
            return await tx.find_unique(Coupon, "code", code)

    async def set_active(
        self,
        code: str,
        active: bool,
        *,
        tx: LedgerTransaction | None = None,
    ) -> Coupon:
        """Switch a coupon on or off."""

        async def work(tx: LedgerTransaction) -> Coupon:
            coupon = await self._load(tx, code)
            return tx.update(coupon.evolve(active=active))

        return await self._store.in_transaction(tx, work, name="coupons.set_active")

    async def _load(self, tx: LedgerTransaction, code: str) -> Coupon:
        found = await tx.find_unique(Coupon, "code", code)
        if found is None:
            raise CouponNotFoundError(code)
        # Re-read by key so a concurrent deactivation is caught at commit
        coupon = await tx.get_for_update(Coupon, found.id)
        if coupon is None:
            raise CouponNotFoundError(code)
        return coupon

    async def authorize(
        self,
        code: str,
        user_id: UUID,
        subtotal: Decimal,
        *,
        tx: LedgerTransaction | None = None,
    ) -> Authorization:
        """
        Check that ``user_id`` may use ``code`` now and compute the discount.

        Raises:
            CouponNotFoundError: No coupon has this code
            CouponInactiveError: The coupon is switched off
            CouponExpiredError: Now is outside the activity window
            CouponExhaustedError: The global cap is reached
            CouponPerUserLimitError: The user's cap is reached
        """
        if subtotal < 0:
            raise ValidationError(f"must not be negative, got {subtotal}", field="subtotal")

        async def work(tx: LedgerTransaction) -> Authorization:
            coupon = await self._load(tx, code)
            if not coupon.active:
                raise CouponInactiveError(code)
            if not coupon.is_within_window(self._clock()):
                raise CouponExpiredError(code)

            usages = await tx.select_for_update(CouponUsage, coupon.id)
            if coupon.uses_allowed is not None and len(usages) >= coupon.uses_allowed:
                raise CouponExhaustedError(code, coupon.uses_allowed)
            if coupon.uses_per_user is not None:
                used = sum(1 for u in usages if u.user_id == user_id)
                if used >= coupon.uses_per_user:
                    raise CouponPerUserLimitError(code, user_id, coupon.uses_per_user)

            return Authorization(coupon=coupon, discount=compute_discount(coupon, subtotal))

        with self._tracer.span(
            "fulfillment.coupons.authorize",
            {ATTR_COUPON_CODE: code, ATTR_USER_ID: str(user_id)},
        ):
            return await self._store.in_transaction(tx, work, name="coupons.authorize")

    async def record_usage(
        self,
        coupon_id: UUID,
        user_id: UUID,
        *,
        order_id: UUID | None = None,
        tx: LedgerTransaction | None = None,
    ) -> CouponUsage:
        """
        Insert one usage row for a coupon.

        Call it in the transaction that creates the order, after
        ``authorize``, so the use is spent exactly when the order exists.

        Raises:
            NotFoundError: If the coupon does not exist
        """

        async def work(tx: LedgerTransaction) -> CouponUsage:
            await tx.require(Coupon, coupon_id)
            return tx.insert(
                CouponUsage(
                    coupon_id=coupon_id,
                    user_id=user_id,
                    order_id=order_id,
                    used_at=self._clock(),
                )
            )

        usage = await self._store.in_transaction(tx, work, name="coupons.record_usage")
        logger.debug("Recorded usage of coupon %s by user %s", coupon_id, user_id)
        return usage

    async def authorize_and_record(
        self,
        code: str,
        user_id: UUID,
        subtotal: Decimal,
        *,
        order_id: UUID | None = None,
        tx: LedgerTransaction | None = None,
    ) -> Authorization:
        """``authorize`` then ``record_usage`` in one transaction."""

        async def work(tx: LedgerTransaction) -> Authorization:
            auth = await self.authorize(code, user_id, subtotal, tx=tx)
            usage = await self.record_usage(auth.coupon.id, user_id, order_id=order_id, tx=tx)
            return Authorization(coupon=auth.coupon, discount=auth.discount, usage=usage)

        auth = await self._store.in_transaction(tx, work, name="coupons.authorize_and_record")
        logger.info(
            "Coupon %s applied for user %s: discount %s",
            code,
            user_id,
            auth.discount,
        )
        return auth

    async def count_usages(self, coupon_id: UUID, *, user_id: UUID | None = None) -> int:
        """Committed usages of a coupon, optionally for one user."""
        usages = await self._store.list_partition(CouponUsage, coupon_id)
        if user_id is not None:
            usages = [u for u in usages if u.user_id == user_id]
        return len(usages)

    @staticmethod
    def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
        return compute_discount(coupon, subtotal)


__all__ = ["Authorization", "Clock", "CouponAuthorizer", "compute_discount"]
