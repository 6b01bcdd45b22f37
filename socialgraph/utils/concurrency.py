import asyncio
from typing import Awaitable, Callable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def gather_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> List[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` in flight.

    Results keep input order. Work is shielded: if the awaiting caller is
    cancelled, tasks already started still run to completion.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    tasks = [asyncio.ensure_future(run(item)) for item in items]
    if not tasks:
        return []
    return list(await asyncio.shield(asyncio.gather(*tasks)))
