from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

from sectionrank.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def make_batches(items: Sequence[T], size: int) -> List[List[T]]:
    """Consecutive groups of ``size`` items; the last group may be shorter."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class BatchScheduler:
    """Runs one batch of workers concurrently, and batches strictly one after another.

    Workers receive the item and its 1-based position in the full input, and
    results come back in input order.
    """

    def __init__(self, width: int = 3) -> None:
        if width < 1:
            raise ValueError("width must be at least 1")
        self.width = width

    async def run(self, items: Sequence[T], worker: Callable[[T, int], Awaitable[R]]) -> List[R]:
        results: List[R] = []
        batches = make_batches(items, self.width)
        position = 0
        for number, batch in enumerate(batches, start=1):
            logger.debug("Batch started | batch=%s/%s size=%s", number, len(batches), len(batch))
            batch_results = await asyncio.gather(*(worker(item, position + offset + 1) for offset, item in enumerate(batch)))
            results.extend(batch_results)
            position += len(batch)
        return results


__all__ = ["BatchScheduler", "make_batches"]
