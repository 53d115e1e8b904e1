"""Retry with exponential backoff and jitter for transient read failures.

Only idempotent reads (stat, presign) go through this; writes and deletes
surface their first failure to the caller.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float = 5.0,
    jitter: bool = True,
) -> float:
    """Return the delay in seconds before retry number attempt (1-based)."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    if jitter and delay > 0:
        delay *= 0.5 + random.random() / 2
    return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: tuple[type[BaseException], ...],
    attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    description: str = "operation",
) -> T:
    """Await operation(), retrying on retry_on exceptions with backoff.

    Args:
        operation: Zero-arg callable returning a fresh awaitable each call.
        retry_on: Exception types considered transient.
        attempts: Total tries including the first (minimum 1).
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for a single delay.
        description: Label used in log lines.

    Returns:
        The operation's result.

    Raises:
        The last transient exception when all attempts fail; any other
        exception immediately.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                logger.warning(
                    "%s failed after %s attempts: %s", description, attempts, exc
                )
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.debug(
                "%s failed (attempt %s/%s), retrying in %.3fs",
                description,
                attempt,
                attempts,
                delay,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
