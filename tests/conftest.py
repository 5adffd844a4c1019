"""Shared fixtures: store backends, users and a memory factory."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path

import pytest

from echomap.memory.base import Memory, MemoryStore, UnlockStore, User, UserStore
from echomap.memory.inmemory import InMemoryMemoryStore, InMemoryUnlockStore, InMemoryUserStore
from echomap.memory.store import SQLiteStore

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


@pytest.fixture(params=["sqlite", "memory"])
async def stores(request, tmp_path: Path):
    """(memories, unlocks, users) for each store backend."""
    if request.param == "sqlite":
        store = SQLiteStore(tmp_path / "test.db")
        await store.connect()
        yield store, store, store
        await store.close()
    else:
        memories = InMemoryMemoryStore()
        users = InMemoryUserStore()
        yield memories, InMemoryUnlockStore(memories, users), users


@pytest.fixture
def memory_store(stores) -> MemoryStore:
    return stores[0]


@pytest.fixture
def unlock_store(stores) -> UnlockStore:
    return stores[1]


@pytest.fixture
async def user_store(stores) -> UserStore:
    """User store pre-populated with alice, bob and carol."""
    users = stores[2]
    for user_id in (ALICE, BOB, CAROL):
        name = user_id.removeprefix("user-")
        await users.add_user(
            User(id=user_id, username=name, email=f"{name}@example.com", created_at=datetime.now())
        )
    return users


@pytest.fixture
def add_memory(memory_store, user_store) -> Callable[..., Awaitable[Memory]]:
    """Create a memory with sensible defaults; keyword overrides apply."""

    async def _add(owner_id: str = ALICE, **overrides) -> Memory:
        values = {
            "title": "Sunset at the pier",
            "emotion": "joy",
            "latitude": 10.0,
            "longitude": 10.0,
        }
        values.update(overrides)
        return await memory_store.create(Memory(owner_id=owner_id, **values))

    return _add
