"""Tests for the ConcurrencyLimiter."""

import asyncio

import pytest

from scheduler.limiter import ConcurrencyLimiter


@pytest.mark.asyncio
async def test_never_exceeds_max_concurrency():
    limiter = ConcurrencyLimiter(2)
    peak = 0

    async def work():
        nonlocal peak
        peak = max(peak, limiter.in_flight)
        await asyncio.sleep(0.01)

    await asyncio.gather(*(limiter.run(work) for _ in range(6)))

    assert peak == 2
    assert limiter.in_flight == 0


@pytest.mark.asyncio
async def test_passes_result_through():
    limiter = ConcurrencyLimiter()

    async def work():
        return 42

    assert await limiter.run(work) == 42


@pytest.mark.asyncio
async def test_passes_exception_through_and_frees_slot():
    limiter = ConcurrencyLimiter(1)

    async def broken():
        raise ValueError("nope")

    with pytest.raises(ValueError, match="nope"):
        await limiter.run(broken)
    assert limiter.in_flight == 0

    async def fine():
        return "ok"

    assert await limiter.run(fine) == "ok"


@pytest.mark.asyncio
async def test_admission_is_fifo():
    limiter = ConcurrencyLimiter(1)
    order = []

    def make(i):
        async def work():
            order.append(i)
            await asyncio.sleep(0)
        return work

    await asyncio.gather(*(limiter.run(make(i)) for i in range(5)))

    assert order == [0, 1, 2, 3, 4]


def test_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)
