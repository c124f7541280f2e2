"""Shared concurrency primitives for the ingestion and retrieval paths.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped in
   a semaphore acquire/release.  Used for fragment enrichment and for
   documents within one ingestion batch.

2. **staggered** -- delays the start of an awaitable by a fixed offset so a
   burst of documents does not hit the external services in the same tick.

Semaphores are always supplied by the caller; each component owns the one
sized by its own config.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many of them run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def staggered(coro: Awaitable[_T], delay_seconds: float) -> _T:
    """Await *coro* after sleeping *delay_seconds* (no sleep when <= 0)."""
    if delay_seconds > 0:
        await asyncio.sleep(delay_seconds)
    return await coro
