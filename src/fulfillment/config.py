"""
Configuration for the fulfillment engine.

This module provides:
- FulfillmentConfig: Settings shared by the orchestrator and its services
- DEFAULT_CONFIG: The configuration used when none is supplied
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fulfillment.retry import RetryConfig


def _default_conflict_retry() -> RetryConfig:
    return RetryConfig(
        max_retries=10,
        initial_delay=0.002,
        max_delay=0.1,
        exponential_base=2.0,
        jitter=0.5,
    )


def _default_payment_retry() -> RetryConfig:
    return RetryConfig(
        max_retries=3,
        initial_delay=0.5,
        max_delay=10.0,
        exponential_base=2.0,
        jitter=0.1,
    )


@dataclass(frozen=True)
class FulfillmentConfig:
    """
    Settings for the order-fulfillment engine.

    Attributes:
        conflict_retry: Backoff used when a ledger transaction hits a
            concurrent modification. Exhausting it surfaces ConflictError.
        payment_retry: Backoff used for transient gateway failures and
            timeouts. Exhausting it treats the charge as declined.
        payment_timeout: Seconds to wait for a single gateway call
            (None waits indefinitely)
        currency: ISO 4217 code charged for new orders
        payment_provider: Provider name recorded on payment rows
        order_number_prefix: Prefix of generated order numbers

    Example:
        >>> config = FulfillmentConfig(
        ...     payment_timeout=5.0,
        ...     payment_retry=RetryConfig(max_retries=2, initial_delay=0.1),
        ... )
    """

    conflict_retry: RetryConfig = field(default_factory=_default_conflict_retry)
    payment_retry: RetryConfig = field(default_factory=_default_payment_retry)
    payment_timeout: float | None = 30.0
    currency: str = "USD"
    payment_provider: str = "gateway"
    order_number_prefix: str = "ORD"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.payment_timeout is not None and self.payment_timeout <= 0:
            raise ValueError(f"payment_timeout must be positive, got {self.payment_timeout}.")

        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got {self.currency!r}.")

        if not self.payment_provider:
            raise ValueError("payment_provider must not be empty.")

        if not self.order_number_prefix:
            raise ValueError("order_number_prefix must not be empty.")


DEFAULT_CONFIG = FulfillmentConfig()
