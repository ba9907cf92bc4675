# matterflow/core/locks.py
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

ADVISORY_XACT_LOCK = text("SELECT pg_advisory_xact_lock(hashtext(:key))")


class KeyedLock:
    """Registry of asyncio locks, one per key.

    Used to serialize work on a single case (dependency edits) while leaving
    unrelated cases free to proceed concurrently. Locks are dropped once no
    coroutine holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)


async def advisory_xact_lock(db: AsyncSession, key: str) -> bool:
    """Take a PostgreSQL advisory lock on ``key`` for the rest of the transaction.

    This is what serializes a case across worker processes; commit or
    rollback releases it. Other dialects have no equivalent, there only the
    in-process ``KeyedLock`` applies. Returns whether a lock was taken.
    """
    if db.get_bind().dialect.name != "postgresql":
        return False
    await db.execute(ADVISORY_XACT_LOCK, {"key": key})
    return True
