"""
Retries an async operation with linear backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

MIN_BACKOFF_MS = 50


def backoff_delay_ms(interval_ms: int, attempt: int) -> int:
    """Delay after failed attempt number `attempt` (1-based)."""
    return max(interval_ms * attempt, MIN_BACKOFF_MS)


async def with_retry(
    attempts: int,
    interval_ms: int,
    operation: Callable[[int], Awaitable[T]],
) -> T:
    """
    Runs `operation` up to `attempts` times and returns its first result.

    The operation receives the current attempt number, starting at 1. After a
    failed attempt the coroutine sleeps `interval_ms * attempt` milliseconds
    (never less than 50ms) before trying again. When every attempt fails the
    last exception is raised.
    """
    attempts = max(attempts, 1)
    last_exception: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation(attempt)
        except Exception as e:
            last_exception = e
            log.debug(f"Attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(backoff_delay_ms(interval_ms, attempt) / 1000)

    raise last_exception
