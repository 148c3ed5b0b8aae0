"""
Backoff and retry helpers shared by the ledger stores and the orchestrator.

Two kinds of failure are retried in this library:

- optimistic-concurrency conflicts, where a transaction lost a race at
  commit and is re-run from scratch against fresh state;
- transient payment gateway failures (dropped connections, timeouts),
  where the same charge or refund call is simply made again.

Both use the same ``RetryConfig`` and ``calculate_backoff`` so that delays
grow exponentially, are capped, and are spread by jitter.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)
"""Errors that indicate the remote side may succeed if asked again."""


@dataclass(frozen=True)
class RetryConfig:
    """
    How often and how patiently to retry.

    Attributes:
        max_retries: Retries after the first attempt (0 = try once)
        initial_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between consecutive delays
        jitter: Fraction of the delay added or removed at random (0-1)

    Example:
        >>> payment_retry = RetryConfig(max_retries=3, initial_delay=0.5, max_delay=5.0)
        >>> payment_retry.max_attempts
        4
    """

    max_retries: int = 5
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})"
            )
        if self.exponential_base <= 1.0:
            raise ValueError(f"exponential_base must be > 1.0, got {self.exponential_base}")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}")

    @property
    def max_attempts(self) -> int:
        """Total number of calls, the first one included."""
        return self.max_retries + 1


class RetryError(Exception):
    """
    Raised by ``retry_async`` when every attempt failed.

    Attributes:
        attempts: Number of calls made
        last_error: Exception raised by the final call
    """

    def __init__(self, message: str, attempts: int, last_error: Exception) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def calculate_backoff(retry: int, config: RetryConfig) -> float:
    """
    Delay in seconds before retry number ``retry`` (0-based).

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=0.0)
        >>> [calculate_backoff(n, config) for n in range(4)]
        [1.0, 2.0, 4.0, 5.0]
    """
    delay = min(config.initial_delay * config.exponential_base**retry, config.max_delay)
    if config.jitter:
        spread = delay * config.jitter
        delay += random.uniform(-spread, spread)  # nosec B311 - not crypto
    return max(0.0, delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = TRANSIENT_EXCEPTIONS,
    operation_name: str = "operation",
) -> T:
    """
    Call ``operation`` until it succeeds or the retry budget runs out.

    Only ``retryable_exceptions`` trigger another attempt; anything else
    propagates from the failing call unchanged.

    Raises:
        RetryError: If the last permitted attempt also failed
    """
    config = config or RetryConfig()
    waited = 0.0

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()
        except retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.warning(
                    "Giving up on %s after %d attempt(s), %.3fs of backoff: %s",
                    operation_name,
                    attempt,
                    waited,
                    e,
                    extra={"operation": operation_name, "error_type": type(e).__name__},
                )
                raise RetryError(
                    f"{operation_name} failed after {attempt} attempt(s): {e}",
                    attempts=attempt,
                    last_error=e,
                ) from e

            delay = calculate_backoff(attempt - 1, config)
            waited += delay
            logger.debug(
                "Attempt %d of %s failed (%s), retrying in %.3fs",
                attempt,
                operation_name,
                type(e).__name__,
                delay,
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.debug("%s succeeded on attempt %d", operation_name, attempt)
            return result

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "TRANSIENT_EXCEPTIONS",
    "RetryConfig",
    "RetryError",
    "calculate_backoff",
    "retry_async",
]
