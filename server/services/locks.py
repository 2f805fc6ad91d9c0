"""Per-key asyncio locks.

Serializes the read-modify-write of one entity's alert state when cycles
overlap inside a process. Different keys never contend.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLocks:
    """Lazily created asyncio.Lock per key, dropped once uncontended."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
