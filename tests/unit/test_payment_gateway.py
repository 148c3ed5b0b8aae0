"""
Tests for the in-memory payment gateway.
"""

from decimal import Decimal

import pytest

from fulfillment import (
    InMemoryPaymentGateway,
    PaymentDeclinedError,
    PaymentGateway,
    PaymentTransientError,
)


def test_satisfies_protocol() -> None:
    assert isinstance(InMemoryPaymentGateway(), PaymentGateway)


@pytest.mark.asyncio
async def test_charge_and_refund() -> None:
    gateway = InMemoryPaymentGateway(name="acme")

    charge = await gateway.charge(Decimal("12.00"), "EUR", "ORD-1")
    refund = await gateway.refund(charge.charge_id, Decimal("12.00"))

    assert gateway.name == "acme"
    assert charge.amount == Decimal("12.00")
    assert charge.currency == "EUR"
    assert refund.charge_id == charge.charge_id
    assert gateway.charges == [charge]
    assert gateway.refunds == [refund]


@pytest.mark.asyncio
async def test_scripted_failures_replay_in_order() -> None:
    gateway = InMemoryPaymentGateway()
    gateway.fail_next_charge(PaymentTransientError("busy"))
    gateway.decline_next_charge("stolen card")

    with pytest.raises(PaymentTransientError):
        await gateway.charge(Decimal("1.00"), "USD", "ORD-1")
    with pytest.raises(PaymentDeclinedError, match="stolen card"):
        await gateway.charge(Decimal("1.00"), "USD", "ORD-1")
    await gateway.charge(Decimal("1.00"), "USD", "ORD-1")

    assert gateway.charge_attempts == 3
    assert len(gateway.charges) == 1


@pytest.mark.asyncio
async def test_refund_of_unknown_charge_declined() -> None:
    gateway = InMemoryPaymentGateway()
    with pytest.raises(PaymentDeclinedError):
        await gateway.refund("ch_missing", Decimal("1.00"))
    assert gateway.refund_attempts == 1


@pytest.mark.asyncio
async def test_duplicate_charges_reported() -> None:
    gateway = InMemoryPaymentGateway()
    await gateway.charge(Decimal("1.00"), "USD", "ORD-1")
    await gateway.charge(Decimal("1.00"), "USD", "ORD-1")
    await gateway.charge(Decimal("1.00"), "USD", "ORD-2")

    assert gateway.duplicate_charges() == {"ORD-1": 2}
