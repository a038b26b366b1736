"""Per-key asyncio locks used to serialize work on one listing inside a process.

The registry is an explicit object owned by the service container, so every
service that touches a listing (bidding, reservations, settlement) shares the
same lock for that listing. Cross-process safety comes from the row lock
(`SELECT ... FOR UPDATE`) and the version check taken inside the critical section.
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager


class KeyedLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    def is_locked(self, key: str) -> bool:
        return key in self._locks and self._locks[key].locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Acquire the locks for all keys in sorted order (no lock-order deadlocks)."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._locks[key])
            yield

    @property
    def size(self) -> int:
        """Number of keys seen so far."""
        return len(self._locks)
