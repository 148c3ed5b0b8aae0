"""Library exceptions for the fulfillment package."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID


class FulfillmentError(Exception):
    """Base exception for fulfillment library."""

    pass


class ValidationError(FulfillmentError):
    """Raised when a request is malformed. No state is changed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        prefix = f"Invalid {field}: " if field else ""
        super().__init__(f"{prefix}{message}")


# =============================================================================
# Ledger store
# =============================================================================


class NotFoundError(FulfillmentError):
    """Raised when a record cannot be found."""

    def __init__(self, entity: str, key: str | UUID) -> None:
        self.entity = entity
        self.key = str(key)
        super().__init__(f"{entity} not found: {key}")


class DuplicateKeyError(FulfillmentError):
    """Raised when an insert collides with an existing key or unique field."""

    def __init__(self, entity: str, field: str, value: str) -> None:
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {entity}.{field}: {value!r}")


class ConflictError(FulfillmentError):
    """
    Raised when a concurrent modification is detected at commit time.

    The transaction that observed the conflict has been rolled back and
    can be retried from the beginning.

    Attributes:
        entity: Entity (or partition) name that changed underneath us
        key: Record key or partition key
        expected_version: Version the transaction read
        actual_version: Version found at commit time
    """

    def __init__(
        self,
        entity: str,
        key: str,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        self.entity = entity
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        found = "missing" if actual_version is None else f"version {actual_version}"
        super().__init__(
            f"Concurrent modification of {entity} {key}: "
            f"expected version {expected_version}, found {found}"
        )


class ConsistencyViolation(FulfillmentError):
    """
    Raised when an invariant of the ledger would be broken.

    This is never corrected silently. It indicates a bug or corrupted data
    and must be surfaced to operators.
    """

    def __init__(self, message: str, entity: str | None = None, key: str | None = None) -> None:
        self.entity = entity
        self.key = key
        super().__init__(message)


# =============================================================================
# Inventory
# =============================================================================


class InsufficientStockError(FulfillmentError):
    """Raised when available stock cannot cover a reservation."""

    def __init__(
        self,
        product_id: UUID,
        requested: int,
        available: int,
        warehouse_id: UUID | None = None,
    ) -> None:
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available
        where = f" in warehouse {warehouse_id}" if warehouse_id else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{where}: "
            f"requested {requested}, available {available}"
        )


# =============================================================================
# Coupons
# =============================================================================


class CouponError(FulfillmentError):
    """Base class for coupon rejections."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class CouponNotFoundError(CouponError):
    """Raised when no coupon exists for a code."""

    def __init__(self, code: str) -> None:
        super().__init__(code, f"Coupon not found: {code!r}")


class CouponInactiveError(CouponError):
    """Raised when a coupon has been switched off."""

    def __init__(self, code: str) -> None:
        super().__init__(code, f"Coupon {code!r} is not active")


class CouponExpiredError(CouponError):
    """Raised when a coupon is used outside its activity window."""

    def __init__(self, code: str) -> None:
        super().__init__(code, f"Coupon {code!r} is outside its activity window")


class CouponExhaustedError(CouponError):
    """Raised when a coupon has reached its global usage cap."""

    def __init__(self, code: str, uses_allowed: int) -> None:
        self.uses_allowed = uses_allowed
        super().__init__(code, f"Coupon {code!r} has reached its limit of {uses_allowed} uses")


class CouponPerUserLimitError(CouponError):
    """Raised when a user has reached the per-user cap of a coupon."""

    def __init__(self, code: str, user_id: UUID, uses_per_user: int) -> None:
        self.user_id = user_id
        self.uses_per_user = uses_per_user
        super().__init__(
            code,
            f"User {user_id} has already used coupon {code!r} {uses_per_user} time(s)",
        )


# =============================================================================
# Payments
# =============================================================================


class PaymentError(FulfillmentError):
    """Base class for payment gateway failures."""

    def __init__(self, message: str, order_id: UUID | None = None) -> None:
        self.order_id = order_id
        super().__init__(message)


class PaymentDeclinedError(PaymentError):
    """Raised when a charge is permanently declined. Not retried."""

    def __init__(self, reason: str, order_id: UUID | None = None) -> None:
        self.reason = reason
        super().__init__(f"Payment declined: {reason}", order_id)


class PaymentTransientError(PaymentError):
    """Raised when a gateway call fails in a way that may succeed on retry."""

    def __init__(self, reason: str, order_id: UUID | None = None) -> None:
        self.reason = reason
        super().__init__(f"Transient payment failure: {reason}", order_id)


class PaymentRefundError(PaymentError):
    """Raised when a refund could not be issued. Needs operator attention."""

    def __init__(self, charge_id: str, reason: str, order_id: UUID | None = None) -> None:
        self.charge_id = charge_id
        self.reason = reason
        super().__init__(f"Refund of charge {charge_id} failed: {reason}", order_id)


# =============================================================================
# Orders and shipments
# =============================================================================


class InvalidTransitionError(FulfillmentError):
    """Raised when an order or shipment cannot move to the requested status."""

    def __init__(self, entity: str, key: UUID, current: str, requested: str) -> None:
        self.entity = entity
        self.key = key
        self.current = current
        self.requested = requested
        super().__init__(f"{entity} {key} cannot move from {current!r} to {requested!r}")


class UnallocatableItemError(FulfillmentError):
    """Raised when no combination of warehouses can ship an order item."""

    def __init__(self, order_item_id: UUID, requested: int, allocatable: int) -> None:
        self.order_item_id = order_item_id
        self.requested = requested
        self.allocatable = allocatable
        super().__init__(
            f"Cannot allocate order item {order_item_id}: "
            f"needs {requested}, only {allocatable} shippable"
        )


class PricingError(ValidationError):
    """Raised when computed order amounts are out of range."""

    def __init__(self, message: str, amount: Decimal | None = None) -> None:
        self.amount = amount
        super().__init__(message, field="amount")
