"""
Async Polling Primitive for queryrunner.

A Waiter paces the poll loop of one long-running backend operation with
capped exponential backoff plus jitter, and stops once its time budget
is spent.

Usage:
    waiter = Waiter(min_delay=0.1, max_delay=5.0, timeout=900.0, jitter=0.2)
    async for attempt in waiter:
        status = await describe()
        if status == "FINISHED":
            break
    else:
        raise QueryTimeoutError("wait query result timeout")

The delay before attempt ``n`` (0-indexed) is

    min(max_delay, min_delay * 2**n) + uniform(0, jitter)

clamped to whatever is left of the budget, so the loop never sleeps past
``start_time + timeout``. Cancelling the task interrupts the sleep with
asyncio.CancelledError.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time

logger = logging.getLogger(__name__)

MAX_EXPONENT = 62


class Waiter:
    """
    Async iterator yielding attempt numbers until the timeout elapses.

    Args:
        min_delay: Delay before the first attempt (seconds)
        max_delay: Upper bound of the backoff before jitter (seconds)
        timeout: Total budget measured from start_time (seconds)
        jitter: Upper bound of the uniform random delay added each step
        start_time: ``time.monotonic()`` value the budget starts at
            (defaults to construction time)
    """

    def __init__(
        self,
        min_delay: float,
        max_delay: float,
        timeout: float,
        jitter: float = 0.0,
        start_time: float | None = None,
    ):
        if min_delay < 0 or max_delay < 0 or jitter < 0:
            raise ValueError("delays must be non-negative")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.jitter = jitter
        self.start_time = time.monotonic() if start_time is None else start_time
        self.attempt = 0

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def remaining(self) -> float:
        return max(0.0, self.timeout - self.elapsed)

    @property
    def timed_out(self) -> bool:
        return self.elapsed >= self.timeout

    def backoff(self, attempt: int) -> float:
        """Delay before ``attempt``, jitter excluded."""
        return min(self.max_delay, self.min_delay * 2 ** min(attempt, MAX_EXPONENT))

    def next_delay(self) -> float:
        delay = self.backoff(self.attempt)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    def __aiter__(self) -> Waiter:
        return self

    async def __anext__(self) -> int:
        elapsed = self.elapsed
        if elapsed >= self.timeout:
            logger.debug(f"[waiter] Budget spent after {self.attempt} attempts ({elapsed:.3f}s)")
            raise StopAsyncIteration

        delay = min(self.next_delay(), self.timeout - elapsed)
        await asyncio.sleep(delay)
        attempt = self.attempt
        self.attempt += 1
        return attempt

    def __repr__(self) -> str:
        return (
            f"<Waiter attempt={self.attempt} elapsed={self.elapsed:.3f}s "
            f"timeout={self.timeout}s>"
        )


__all__ = ["Waiter"]
