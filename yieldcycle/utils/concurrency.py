"""
Concurrency helpers.

Bounded fan-out for batch operations.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar


T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> list[R | BaseException]:
    """
    Run worker over items with at most ``limit`` in flight.

    Exceptions are returned in place of results, so one failing item never
    aborts the others.

    Args:
        items: Work items
        worker: Coroutine function applied to each item
        limit: Maximum concurrent workers

    Returns:
        Results (or exceptions) in item order
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return await asyncio.gather(
        *(_run(item) for item in items), return_exceptions=True
    )
