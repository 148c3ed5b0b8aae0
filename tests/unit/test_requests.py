"""
Tests for checkout request validation.
"""

from uuid import uuid4

import pytest

from fulfillment import CheckoutRequest, LineItemRequest, ValidationError


def test_parse_valid_request() -> None:
    product_id = uuid4()
    request = CheckoutRequest.parse(
        {
            "user_id": str(uuid4()),
            "items": [{"product_id": str(product_id), "quantity": 2}],
            "coupon_code": "SAVE10",
        }
    )

    assert request.items == [LineItemRequest(product_id=product_id, quantity=2)]
    assert request.coupon_code == "SAVE10"
    assert request.shipping_address_id is None


@pytest.mark.parametrize(
    "items",
    [
        [],
        [{"product_id": "not-a-uuid", "quantity": 1}],
        [{"product_id": "00000000-0000-0000-0000-000000000001", "quantity": 0}],
        [{"product_id": "00000000-0000-0000-0000-000000000001", "quantity": -3}],
        [
            {"product_id": "00000000-0000-0000-0000-000000000001", "quantity": 1},
            {"product_id": "00000000-0000-0000-0000-000000000001", "quantity": 2},
        ],
    ],
)
def test_invalid_items_rejected(items: list) -> None:
    with pytest.raises(ValidationError) as exc_info:
        CheckoutRequest.parse({"user_id": str(uuid4()), "items": items})
    assert exc_info.value.field == "request"


def test_empty_coupon_code_rejected() -> None:
    with pytest.raises(ValidationError):
        CheckoutRequest.parse(
            {
                "user_id": str(uuid4()),
                "items": [{"product_id": str(uuid4()), "quantity": 1}],
                "coupon_code": "",
            }
        )
