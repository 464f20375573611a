# locks.py — Per-key asyncio locks that are forgotten once nobody holds or awaits them
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLock:
    """One ``asyncio.Lock`` per key.

    A key's lock lives only while some task holds it or is waiting for it, so
    the table never grows past the number of keys in use at once.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}  # key -> holders + waiters

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users.get(key, 1) - 1
            if remaining:
                self._users[key] = remaining
            else:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    def get(self, key: str):
        return self._locks.get(key)

    def __len__(self) -> int:
        return len(self._locks)

    def clear(self):
        self._locks.clear()
        self._users.clear()
