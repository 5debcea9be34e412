"""
Procurement Orders - Per-Order Locks

In-process mutual exclusion keyed by order id. Guard evaluation and the state
write for one order never interleave inside a worker; across workers the
row lock (SELECT ... FOR UPDATE) and the version column take over.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator
from weakref import WeakValueDictionary


class OrderLockRegistry:
    """Hands out one asyncio.Lock per order id while someone holds it."""

    def __init__(self):
        self._locks: "WeakValueDictionary[uuid.UUID, asyncio.Lock]" = WeakValueDictionary()

    def _lock_for(self, order_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, order_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._lock_for(order_id)
        async with lock:
            yield


# Singleton instance
order_locks = OrderLockRegistry()
