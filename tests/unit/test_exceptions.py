"""
Tests for the exception hierarchy.
"""

from uuid import uuid4

import pytest

from fulfillment import (
    ConflictError,
    CouponError,
    CouponExhaustedError,
    CouponPerUserLimitError,
    FulfillmentError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentError,
    PaymentRefundError,
    PricingError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error",
    [
        ValidationError("bad", field="x"),
        NotFoundError("orders", uuid4()),
        ConflictError("orders", "k", 1, 2),
        InsufficientStockError(uuid4(), 3, 1),
        CouponExhaustedError("SAVE10", 5),
        PaymentDeclinedError("card declined"),
        InvalidTransitionError("Order", uuid4(), "shipped", "cancelled"),
        PricingError("negative"),
    ],
)
def test_everything_is_a_fulfillment_error(error: Exception) -> None:
    assert isinstance(error, FulfillmentError)


def test_validation_error_names_field() -> None:
    error = ValidationError("must be positive", field="quantity")
    assert error.field == "quantity"
    assert str(error) == "Invalid quantity: must be positive"


def test_pricing_error_is_validation_error() -> None:
    assert isinstance(PricingError("x"), ValidationError)


def test_conflict_error_attributes() -> None:
    error = ConflictError("inventory", "p:w", 3)
    assert error.expected_version == 3
    assert error.actual_version is None
    assert "missing" in str(error)


def test_insufficient_stock_message() -> None:
    product_id, warehouse_id = uuid4(), uuid4()
    error = InsufficientStockError(product_id, 5, 2, warehouse_id)
    assert (error.requested, error.available) == (5, 2)
    assert str(warehouse_id) in str(error)


def test_coupon_errors_carry_code() -> None:
    user_id = uuid4()
    error = CouponPerUserLimitError("ONCE", user_id, 1)
    assert isinstance(error, CouponError)
    assert error.code == "ONCE"
    assert error.user_id == user_id


def test_payment_errors_carry_order() -> None:
    order_id = uuid4()
    declined = PaymentDeclinedError("expired card", order_id)
    refund = PaymentRefundError("ch_1", "gateway down", order_id)

    assert isinstance(refund, PaymentError)
    assert declined.order_id == order_id
    assert declined.reason == "expired card"
    assert refund.charge_id == "ch_1"
