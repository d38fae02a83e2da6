"""
Concurrency limiter — caps how many sends are in flight at once.

This is separate from batch pacing on purpose:
- the limiter bounds CONCURRENCY (how many SMTP conversations overlap)
- the scheduler's batch delay bounds RATE (how fast batches follow each other)

One limiter is shared by every job in the process, so two campaigns running
side by side still respect the same ceiling toward the mail provider.

Admission is FIFO (asyncio.Semaphore wakes waiters in arrival order).
The task's result or exception passes through untouched.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:

    def __init__(self, max_concurrency: int = 5):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._max = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight = 0

    @property
    def max_concurrency(self) -> int:
        return self._max

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Wait for a free slot, then await task() inside it."""
        async with self._semaphore:
            self._in_flight += 1
            try:
                return await task()
            finally:
                self._in_flight -= 1
