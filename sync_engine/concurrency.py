"""Bounded-concurrency mapper for I/O-bound sub-tasks.

Runs an async function over a list of items with a fixed number of
worker tasks. The first error cancels the remaining workers and is
re-raised, so a phase either gets every result or a single exception.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from core.config import DEFAULT_CONCURRENCY

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> List[R]:
    """Apply func to every item with at most `concurrency` calls in flight.

    Args:
        items: Inputs
        func: Async function applied to each input
        concurrency: Number of worker tasks

    Returns:
        Results in input order

    Raises:
        ValueError: If concurrency is less than 1
        Exception: The first exception raised by func
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    work = list(items)
    results: List[Optional[R]] = [None] * len(work)
    pending = iter(enumerate(work))

    async def worker() -> None:
        # The shared iterator is only advanced between awaits
        for index, item in pending:
            results[index] = await func(item)

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, len(work)))]
    if not workers:
        return []

    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return results
