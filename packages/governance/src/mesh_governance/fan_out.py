"""Order-preserving concurrent map.

for_each() runs one coroutine per item, at most `max_concurrency` at a time,
and returns their results in input order regardless of completion order.
If any item fails, the remaining items are cancelled and the first failure
propagates: there is no partial result.

Plain asyncio, so it runs unchanged inside a Temporal workflow, where the
workflow event loop makes gather/Semaphore deterministic.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def for_each(
    items: Sequence[T],
    run_item: Callable[[int, T], Awaitable[R]],
    *,
    max_concurrency: int | None = None,
) -> list[R]:
    """Apply `run_item(index, item)` to every item; results are index-aligned with `items`."""
    if not items:
        return []
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def run(index: int, item: T) -> R:
        if semaphore is None:
            return await run_item(index, item)
        async with semaphore:
            return await run_item(index, item)

    tasks = [asyncio.ensure_future(run(index, item)) for index, item in enumerate(items)]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
