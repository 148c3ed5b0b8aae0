"""Payment gateway adapters for the fulfillment library."""

from fulfillment.payments.gateway import ChargeResult, PaymentGateway, RefundResult
from fulfillment.payments.in_memory import InMemoryPaymentGateway

__all__ = [
    "ChargeResult",
    "InMemoryPaymentGateway",
    "PaymentGateway",
    "RefundResult",
]
