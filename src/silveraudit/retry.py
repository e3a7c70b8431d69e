"""Retry logic with fixed or exponential delays.

Used for flaky network edges: link extraction attempts (fixed delay between
attempts) and the completion-signal webhook (exponential backoff with jitter).
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .logging import logger

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3  # Total attempts, including the first one
    base_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 30.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # Exponential backoff multiplier
    jitter: float = 0.5  # Random jitter factor (0-1)
    fixed: bool = False  # Always wait base_delay, no backoff or jitter
    retry_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


def calculate_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    """Delay before attempt ``attempt + 1`` (``attempt`` counts from 0)."""
    if config.fixed:
        return max(0.0, config.base_delay)

    delay = config.base_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    The last exception is re-raised once every attempt has failed.
    """
    if config is None:
        config = RetryConfig()
    name = getattr(func, "__name__", repr(func))
    attempts = max(1, config.max_attempts)
    last_exception: Exception | None = None

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except config.retry_exceptions as e:
            last_exception = e
            if attempt < attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"Attempt {attempt + 1}/{attempts} for {name} failed: {e}. "
                    f"Waiting {delay:.1f}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"All {attempts} attempts exhausted for {name}: {e}")

    if last_exception:
        raise last_exception
    raise RuntimeError("Unexpected retry loop exit")

