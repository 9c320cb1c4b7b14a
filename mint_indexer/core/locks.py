"""
Keyed Async Locks

One asyncio.Lock per key, created on first use. Serializes work on the same
key (a mint, or a mint/period pair) while different keys run concurrently.

Usage:
    locks = KeyedLock()
    async with locks.hold(("mint", Resolution.M5)):
        ...
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    """Map of lazily created asyncio locks."""

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        """Get (or create) the lock for a key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for a key for the duration of the block."""
        async with self.get(key):
            yield

    def locked(self, key: Hashable) -> bool:
        """True if the key's lock is currently held."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
