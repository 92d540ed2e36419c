"""Client-side time bound for store round-trips."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from farmledger.errors import TransientStoreError
from farmledger.services.storage.changes import ChangeFeed


T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    seconds: float,
    operation: str,
    changes: Optional[ChangeFeed] = None,
) -> T:
    """
    Await `awaitable` for at most `seconds`.

    With `changes`, events for writes made under the deadline are delivered
    to listeners only after it, so a slow listener cannot turn a committed
    write into a timeout.

    Raises:
        TransientStoreError: If the deadline passes first
    """
    if changes is None:
        return await _wait(awaitable, seconds, operation)
    async with changes.deferred():
        return await _wait(awaitable, seconds, operation)


async def _wait(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise TransientStoreError(f"{operation} timed out after {seconds}s") from e
