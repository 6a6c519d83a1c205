"""Exponential backoff for flaky network calls (SMTP delivery, renderer)."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from autosend.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))
    # Narrows retryable_exceptions per instance, e.g. SMTP 4xx vs 5xx replies
    retry_if: Callable[[Exception], bool] | None = None


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after the given zero-based failed attempt."""
    delay = min(config.backoff_base * (2**attempt), config.backoff_max)
    if config.jitter:
        delay *= 0.5 + random.random()
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Await ``fn()`` until it succeeds or the attempts run out.

    Only ``config.retryable_exceptions`` that also pass ``config.retry_if``
    are retried; anything else, and the last retryable failure, propagates
    to the caller.

    Example:
        ```python
        config = RetryConfig(max_attempts=3, retryable_exceptions=(SMTPException,))
        await retry_with_backoff(lambda: smtp_send(message), config, "smtp:ops@example.com")
        ```
    """
    config = config or RetryConfig()
    attempt = 0

    while True:
        try:
            return await fn()
        except config.retryable_exceptions as e:
            attempt += 1
            if config.retry_if is not None and not config.retry_if(e):
                logger.bind(operation=operation_name, attempt=attempt, error=str(e)).warning(
                    "retry_skipped_permanent_error"
                )
                raise

            if attempt >= config.max_attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            delay = backoff_delay(attempt - 1, config)
            logger.bind(
                operation=operation_name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)
