"""
Tests for FulfillmentConfig, RetryConfig and the retry helpers.
"""

import pytest

from fulfillment import DEFAULT_CONFIG, FulfillmentConfig, RetryConfig
from fulfillment.retry import RetryError, calculate_backoff, retry_async


class TestFulfillmentConfig:
    def test_defaults(self) -> None:
        assert DEFAULT_CONFIG.currency == "USD"
        assert DEFAULT_CONFIG.order_number_prefix == "ORD"
        assert DEFAULT_CONFIG.payment_timeout == 30.0
        assert DEFAULT_CONFIG.conflict_retry.max_retries > DEFAULT_CONFIG.payment_retry.max_retries

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"payment_timeout": 0},
            {"payment_timeout": -1.0},
            {"currency": "US"},
            {"currency": "U5D"},
            {"payment_provider": ""},
            {"order_number_prefix": ""},
        ],
    )
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            FulfillmentConfig(**kwargs)

    def test_timeout_can_be_disabled(self) -> None:
        assert FulfillmentConfig(payment_timeout=None).payment_timeout is None


class TestRetryConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"initial_delay": 0},
            {"max_delay": 0},
            {"initial_delay": 2.0, "max_delay": 1.0},
            {"exponential_base": 1.0},
            {"jitter": 1.5},
        ],
    )
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)

    def test_max_attempts_counts_first_call(self) -> None:
        assert RetryConfig(max_retries=0).max_attempts == 1
        assert RetryConfig(max_retries=3).max_attempts == 4

    def test_backoff_grows_and_caps(self) -> None:
        config = RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=0.0)
        assert [calculate_backoff(n, config) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_backoff_jitter_stays_in_range(self) -> None:
        config = RetryConfig(initial_delay=1.0, max_delay=10.0, jitter=0.5)
        for _ in range(50):
            assert 0.5 <= calculate_backoff(0, config) <= 1.5


class TestRetryAsync:
    FAST = RetryConfig(max_retries=2, initial_delay=0.001, max_delay=0.001, jitter=0.0)

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("reset")
            return "done"

        assert await retry_async(flaky, config=self.FAST) == "done"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_gives_up(self) -> None:
        async def broken() -> None:
            raise TimeoutError("slow")

        with pytest.raises(RetryError) as exc_info:
            await retry_async(broken, config=self.FAST)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, TimeoutError)

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        calls = 0

        async def wrong() -> None:
            nonlocal calls
            calls += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(wrong, config=self.FAST)
        assert calls == 1
