"""Dict-backed stores with the same semantics as the SQLite store.

Used for isolated tests and for embedding the engine without a database.
"""

import asyncio
import itertools
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import uuid4

from echomap.core.errors import NotFound
from echomap.discovery.geo import within_radius
from echomap.memory.base import (
    Memory,
    MemoryQuery,
    MemoryStore,
    MemoryUnlock,
    UnlockStore,
    User,
    UserStore,
    validate_memory_update,
    validate_new_memory,
)


def _matches(memory: Memory, criteria: MemoryQuery) -> bool:
    if criteria.active_only and not memory.is_active:
        return False
    if criteria.access_types is not None and memory.access_type not in criteria.access_types:
        return False
    if criteria.exclude_owner_id is not None and memory.owner_id == criteria.exclude_owner_id:
        return False
    if criteria.emotion is not None and memory.emotion != criteria.emotion:
        return False
    if criteria.center is not None and criteria.radius is not None:
        return within_radius(memory.latitude, memory.longitude, criteria.center, criteria.radius)
    return True


class InMemoryUserStore(UserStore):
    def __init__(self):
        self._users: dict[str, User] = {}

    async def add_user(self, user: User) -> User:
        user.id = user.id or str(uuid4())
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)


class InMemoryMemoryStore(MemoryStore):
    """Memory store kept in a dict; returns copies so callers can't mutate state."""

    def __init__(self):
        self._memories: dict[str, Memory] = {}
        self._seq: dict[str, int] = {}  # insertion order, breaks created_at ties
        self._counter = itertools.count()
        self._lock = asyncio.Lock()

    def _ordered(self, memories: list[Memory], recent: bool) -> list[Memory]:
        if recent:
            return sorted(
                memories, key=lambda m: (m.created_at, self._seq[m.id]), reverse=True
            )
        return sorted(memories, key=lambda m: self._seq[m.id])

    async def create(self, memory: Memory) -> Memory:
        validate_new_memory(memory)
        memory.id = str(uuid4())
        memory.created_at = datetime.now()
        memory.unlock_count = 0
        self._memories[memory.id] = replace(memory)
        self._seq[memory.id] = next(self._counter)
        return memory

    async def get(self, memory_id: str) -> Memory | None:
        memory = self._memories.get(memory_id)
        return replace(memory) if memory else None

    async def list_by_owner(self, owner_id: str, recent: bool = False) -> list[Memory]:
        owned = [replace(m) for m in self._memories.values() if m.owner_id == owner_id]
        return self._ordered(owned, recent)

    async def increment_unlock_count(self, memory_id: str) -> bool:
        async with self._lock:
            memory = self._memories.get(memory_id)
            if memory is None:
                return False
            memory.unlock_count += 1
            return True

    async def set_active(self, memory_id: str, active: bool) -> bool:
        memory = self._memories.get(memory_id)
        if memory is None:
            return False
        memory.is_active = active
        return True

    async def update(self, memory_id: str, **changes: Any) -> Memory | None:
        validate_memory_update(changes)
        memory = self._memories.get(memory_id)
        if memory is None:
            return None
        for name, value in changes.items():
            setattr(memory, name, value)
        return replace(memory)

    async def query(self, criteria: MemoryQuery) -> list[Memory]:
        found = [replace(m) for m in self._memories.values() if _matches(m, criteria)]
        found = self._ordered(found, criteria.recent)
        if criteria.limit is not None:
            found = found[: criteria.limit]
        return found

    async def count_by_emotion(self, active_only: bool = True) -> dict[str, int]:
        return dict(
            Counter(
                m.emotion
                for m in self._memories.values()
                if m.is_active or not active_only
            )
        )


class InMemoryUnlockStore(UnlockStore):
    """Append-only list of unlocks.

    When given the memory and user stores, unknown memory or user ids are
    rejected the way the SQLite foreign keys reject them.
    """

    def __init__(
        self,
        memories: InMemoryMemoryStore | None = None,
        users: InMemoryUserStore | None = None,
    ):
        self._unlocks: list[MemoryUnlock] = []
        self._memories = memories
        self._users = users

    async def add(self, unlock: MemoryUnlock) -> MemoryUnlock:
        if self._memories is not None and await self._memories.get(unlock.memory_id) is None:
            raise NotFound(f"Memory not found: {unlock.memory_id}")
        if self._users is not None and await self._users.get_user(unlock.unlocked_by) is None:
            raise NotFound(f"User not found: {unlock.unlocked_by}")
        unlock.id = str(uuid4())
        unlock.unlocked_at = datetime.now()
        self._unlocks.append(replace(unlock))
        return unlock

    async def list_by_memory(self, memory_id: str) -> list[MemoryUnlock]:
        return [replace(u) for u in self._unlocks if u.memory_id == memory_id]

    async def list_by_user(self, user_id: str) -> list[MemoryUnlock]:
        return [replace(u) for u in self._unlocks if u.unlocked_by == user_id]

    async def exists(self, memory_id: str, user_id: str) -> bool:
        return any(
            u.memory_id == memory_id and u.unlocked_by == user_id for u in self._unlocks
        )

    async def count_by_memory(self, memory_id: str) -> int:
        return sum(1 for u in self._unlocks if u.memory_id == memory_id)

    async def count_by_user(self, user_id: str) -> int:
        return sum(1 for u in self._unlocks if u.unlocked_by == user_id)
