"""
In-memory payment gateway.

A scriptable test double. Outcomes are queued per operation; when the
queue is empty every call succeeds.
"""

import asyncio
import itertools
from collections import Counter, deque
from decimal import Decimal

from fulfillment.exceptions import PaymentDeclinedError
from fulfillment.payments.gateway import ChargeResult, RefundResult


class InMemoryPaymentGateway:
    """
    Payment gateway that records calls and replays scripted failures.

    Attributes:
        charges: Successful charges, in order
        refunds: Successful refunds, in order
        charge_attempts: Number of charge calls, successful or not
        refund_attempts: Number of refund calls, successful or not

    Example:
        >>> gateway = InMemoryPaymentGateway()
        >>> gateway.fail_next_charge(PaymentTransientError("gateway timeout"))
        >>> gateway.fail_next_charge(PaymentDeclinedError("card declined"))
        >>> # first charge raises transient, second declined, third succeeds
    """

    def __init__(self, *, name: str = "in-memory", latency: float = 0.0) -> None:
        self._name = name
        self.latency = latency
        self.charges: list[ChargeResult] = []
        self.refunds: list[RefundResult] = []
        self.charge_attempts = 0
        self.refund_attempts = 0
        self._charge_failures: deque[Exception] = deque()
        self._refund_failures: deque[Exception] = deque()
        self._references: Counter[str] = Counter()
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        return self._name

    def fail_next_charge(self, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` charge calls raise ``error``."""
        self._charge_failures.extend([error] * times)

    def decline_next_charge(self, reason: str = "card declined") -> None:
        self.fail_next_charge(PaymentDeclinedError(reason))

    def fail_next_refund(self, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` refund calls raise ``error``."""
        self._refund_failures.extend([error] * times)

    def duplicate_charges(self) -> dict[str, int]:
        """References that were successfully charged more than once."""
        return {ref: n for ref, n in self._references.items() if n > 1}

    async def charge(self, amount: Decimal, currency: str, reference: str) -> ChargeResult:
        self.charge_attempts += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._charge_failures:
            raise self._charge_failures.popleft()
        if amount < 0:
            raise PaymentDeclinedError(f"invalid amount {amount}")

        result = ChargeResult(
            charge_id=f"ch_{next(self._ids):06d}",
            amount=amount,
            currency=currency,
        )
        self.charges.append(result)
        self._references[reference] += 1
        return result

    async def refund(self, charge_id: str, amount: Decimal) -> RefundResult:
        self.refund_attempts += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._refund_failures:
            raise self._refund_failures.popleft()
        if not any(c.charge_id == charge_id for c in self.charges):
            raise PaymentDeclinedError(f"unknown charge {charge_id}")

        result = RefundResult(
            refund_id=f"re_{next(self._ids):06d}",
            charge_id=charge_id,
            amount=amount,
        )
        self.refunds.append(result)
        return result


__all__ = ["InMemoryPaymentGateway"]
