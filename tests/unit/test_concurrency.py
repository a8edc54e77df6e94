"""Tests for bounded fan-out."""

import asyncio

import pytest

from yieldcycle.utils.concurrency import gather_bounded


@pytest.mark.asyncio
async def test_results_in_item_order():
    async def worker(n: int) -> int:
        await asyncio.sleep(0.001 * (5 - n))
        return n * 10

    assert await gather_bounded([1, 2, 3, 4], worker, limit=4) == [10, 20, 30, 40]


@pytest.mark.asyncio
async def test_exception_returned_in_place():
    async def worker(n: int) -> int:
        if n == 2:
            raise ValueError("bad item")
        return n

    results = await gather_bounded([1, 2, 3], worker, limit=2)

    assert results[0] == 1
    assert isinstance(results[1], ValueError)
    assert results[2] == 3


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_limit():
    in_flight = 0
    peak = 0

    async def worker(n: int) -> None:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1

    await gather_bounded(range(20), worker, limit=3)

    assert peak == 3


@pytest.mark.asyncio
async def test_zero_limit_still_runs():
    async def worker(n: int) -> int:
        return n

    assert await gather_bounded([1, 2], worker, limit=0) == [1, 2]
