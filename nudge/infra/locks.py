"""Keyed asyncio locks.

Each key gets its own ``asyncio.Lock`` for as long as somebody holds or waits
on it; the entry is dropped once the last holder leaves so the table does not
grow with every pair ever seen.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders.get(key, 1) - 1
            if remaining <= 0:
                self._holders.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._holders[key] = remaining

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["KeyedLock"]
