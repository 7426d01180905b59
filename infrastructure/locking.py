"""Per-room serialization of capacity-affecting writes"""
import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Dict, Hashable


class RoomLockRegistry:
    """One asyncio.Lock per room id.

    A holder keeps the lock from the capacity check through the commit, so
    two writers can never both pass the check against the same room state.
    Locks for several rooms are taken in sorted order.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def _lock_for(self, room_id: Hashable) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def is_locked(self, room_id: Hashable) -> bool:
        lock = self._locks.get(room_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *room_ids: Hashable):
        """Hold the locks of every given room"""
        async with AsyncExitStack() as stack:
            for room_id in sorted(set(room_ids), key=str):
                await stack.enter_async_context(self._lock_for(room_id))
            yield
