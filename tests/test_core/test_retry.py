"""Tests for retry_with_backoff."""

import pytest

from autosend.core.retry import RetryConfig, backoff_delay, retry_with_backoff

pytestmark = pytest.mark.asyncio

FAST = dict(backoff_base=0.001, backoff_max=0.001, jitter=False)


class FlakyError(Exception):
    pass


class Flaky:
    def __init__(self, failures: int, exc: type[Exception] = FlakyError) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("transient")
        return "ok"


async def test_succeeds_after_transient_failures():
    fn = Flaky(failures=2)
    config = RetryConfig(max_attempts=3, retryable_exceptions=(FlakyError,), **FAST)

    assert await retry_with_backoff(fn, config, "test") == "ok"
    assert fn.calls == 3


async def test_reraises_after_last_attempt():
    fn = Flaky(failures=5)
    config = RetryConfig(max_attempts=3, retryable_exceptions=(FlakyError,), **FAST)

    with pytest.raises(FlakyError):
        await retry_with_backoff(fn, config, "test")
    assert fn.calls == 3


async def test_non_retryable_errors_propagate_immediately():
    fn = Flaky(failures=1, exc=KeyError)
    config = RetryConfig(max_attempts=3, retryable_exceptions=(FlakyError,), **FAST)

    with pytest.raises(KeyError):
        await retry_with_backoff(fn, config, "test")
    assert fn.calls == 1


async def test_backoff_is_exponential_and_capped():
    config = RetryConfig(backoff_base=1.0, backoff_max=5.0, jitter=False)

    assert [backoff_delay(n, config) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


async def test_retry_if_stops_on_permanent_errors():
    fn = Flaky(failures=5)
    config = RetryConfig(
        max_attempts=3,
        retryable_exceptions=(FlakyError,),
        retry_if=lambda e: str(e) != "transient",
        **FAST,
    )

    with pytest.raises(FlakyError):
        await retry_with_backoff(fn, config, "test")
    assert fn.calls == 1
