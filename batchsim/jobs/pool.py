"""Bounded-concurrency execution of async work items.

Both entry points keep at most *concurrency* workers in flight and refill a
slot as soon as any worker settles (a sliding window, not fixed batches):

* :func:`iter_with_concurrency` - an async generator yielding each result
  as it lands, in *completion order*.
* :func:`run_with_concurrency` - drains the generator, invoking an optional
  synchronous ``on_progress`` callback per result, and returns the full
  result list (still in completion order).

Workers are expected never to raise; encode failure in the result value.
An exception raised by a worker propagates out of the pool unchanged.

Example::

    async def work(n: int) -> int:
        await asyncio.sleep(0.1)
        return n * 2

    results = await run_with_concurrency(range(10), work, concurrency=3)
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Set, TypeVar

from batchsim.observability.logging import get_logger

T = TypeVar("T")
R = TypeVar("R")

logger = get_logger(__name__)


async def iter_with_concurrency(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 3,
) -> AsyncIterator[R]:
    """Yield ``worker(item)`` results as they complete.

    The iterator is lazy, finite and single-use. If the consumer stops
    early, items not yet dispatched are never started, and workers already
    in flight are awaited to completion rather than cancelled.
    """
    queue = list(items)
    limit = max(1, int(concurrency))
    pending: Set[asyncio.Task] = set()
    cursor = 0

    def dispatch() -> None:
        nonlocal cursor
        while len(pending) < limit and cursor < len(queue):
            pending.add(asyncio.ensure_future(worker(queue[cursor])))
            cursor += 1

    dispatch()
    try:
        while pending:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            pending.difference_update(done)
            # Refill freed slots before handing results to the consumer
            dispatch()
            for task in done:
                yield task.result()
    finally:
        if pending:
            logger.debug("pool.draining", in_flight=len(pending), undispatched=len(queue) - cursor)
            await asyncio.gather(*pending, return_exceptions=True)


async def run_with_concurrency(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 3,
    on_progress: Optional[Callable[[R], None]] = None,
) -> List[R]:
    """Run *worker* over every item with at most *concurrency* in flight.

    Args:
        items: Work items; each is passed to *worker* exactly once.
        worker: Async callable producing one result per item.
        concurrency: Maximum simultaneous workers. Values below 1 are
            treated as 1.
        on_progress: Optional callback invoked synchronously with each
            result as soon as it is available.

    Returns:
        One result per item, in completion order. An empty *items*
        resolves to ``[]`` without calling *worker*.
    """
    results: List[R] = []
    async for result in iter_with_concurrency(items, worker, concurrency):
        results.append(result)
        if on_progress is not None:
            on_progress(result)
    return results
