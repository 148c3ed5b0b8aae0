"""
Payment gateway protocol.

The gateway is a third-party API behind an adapter. The orchestrator
treats it as at-least-once, possibly slow and possibly failing, and tells
failures apart by exception type:

- PaymentDeclinedError: permanent, never retried
- PaymentTransientError (or ConnectionError / TimeoutError): retried with
  backoff, then treated as declined
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ChargeResult:
    """
    Outcome of a successful charge.

    Attributes:
        charge_id: Provider's id for the charge; the idempotency key used to
            merge duplicate success notifications
        amount: Amount captured
        currency: ISO 4217 currency code
    """

    charge_id: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a successful refund."""

    refund_id: str
    charge_id: str
    amount: Decimal


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Protocol for payment provider adapters.

    Both methods raise PaymentDeclinedError for permanent failures and
    PaymentTransientError for failures worth retrying.
    """

    @property
    def name(self) -> str:
        """Provider name recorded on payment rows."""
        ...

    async def charge(self, amount: Decimal, currency: str, reference: str) -> ChargeResult:
        """
        Capture ``amount`` for the order identified by ``reference``.

        Args:
            amount: Amount to capture
            currency: ISO 4217 currency code
            reference: Order reference shown to the provider (order number)
        """
        ...

    async def refund(self, charge_id: str, amount: Decimal) -> RefundResult:
        """Return ``amount`` of a previous charge."""
        ...


__all__ = ["ChargeResult", "PaymentGateway", "RefundResult"]
