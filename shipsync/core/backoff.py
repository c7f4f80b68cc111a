"""Backoff utilities.

`exponential_backoff` is an async generator: it yields the current delay for the
caller to attempt an operation, then sleeps for that delay before the next attempt.
`retry_delay_seconds` computes the same curve for a single attempt number, used when
rescheduling failed queue events instead of sleeping in-process.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)


def retry_delay_seconds(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float = 2.0,
) -> float:
    """Delay before retry number `attempt` (1-based). Never negative, capped at max_delay."""
    if attempt <= 1:
        return max(0.0, min(initial_delay, max_delay))
    return max(0.0, min(initial_delay * (multiplier ** (attempt - 1)), max_delay))
