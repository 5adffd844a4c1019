"""Tests for the unlock engine."""

import asyncio
import logging

import pytest

from echomap.core.errors import Conflict, NotFound
from echomap.memory.base import Memory
from echomap.memory.inmemory import InMemoryMemoryStore, InMemoryUnlockStore
from echomap.unlock.engine import UnlockEngine

from conftest import ALICE, BOB, CAROL


@pytest.fixture
def engine(memory_store, unlock_store, user_store):
    return UnlockEngine(memory_store, unlock_store, user_store)


@pytest.mark.asyncio
async def test_unlock_records_echo_and_counts(add_memory, memory_store, engine):
    memory = await add_memory(owner_id=ALICE)

    unlock = await engine.unlock(memory.id, BOB, "I was there too", "https://a/echo.webm")

    assert unlock.id
    assert unlock.unlocked_at is not None
    assert unlock.memory_id == memory.id
    assert unlock.unlocked_by == BOB
    assert unlock.echo_content == "I was there too"
    assert unlock.echo_audio_url == "https://a/echo.webm"
    assert (await memory_store.get(memory.id)).unlock_count == 1

    unlocks = await engine.list_unlocks_for_memory(memory.id)
    assert [u.id for u in unlocks] == [unlock.id]


@pytest.mark.asyncio
async def test_repeat_unlock_is_recorded_twice(add_memory, memory_store, engine):
    """Same user unlocking twice yields two records and a counter of 2."""
    memory = await add_memory(owner_id=ALICE)

    await engine.unlock(memory.id, BOB)
    await engine.unlock(memory.id, BOB)

    assert len(await engine.list_unlocks_for_memory(memory.id)) == 2
    assert (await memory_store.get(memory.id)).unlock_count == 2
    assert await engine.has_unlocked(memory.id, BOB) is True


@pytest.mark.asyncio
async def test_concurrent_unlocks_lose_no_increments(add_memory, memory_store, engine):
    memory = await add_memory(owner_id=ALICE)
    n = 25

    await asyncio.gather(
        *(engine.unlock(memory.id, BOB if i % 2 else CAROL, f"echo {i}") for i in range(n))
    )

    assert (await memory_store.get(memory.id)).unlock_count == n
    assert await engine.count_for_memory(memory.id) == n
    assert len(await engine.list_unlocks_for_memory(memory.id)) == n


@pytest.mark.asyncio
async def test_unlock_unknown_memory(engine, unlock_store):
    with pytest.raises(NotFound, match="Memory not found"):
        await engine.unlock("missing", BOB)
    assert await unlock_store.count_by_user(BOB) == 0


@pytest.mark.asyncio
async def test_unlock_unknown_user(add_memory, memory_store, engine):
    memory = await add_memory(owner_id=ALICE)

    with pytest.raises(NotFound, match="User not found"):
        await engine.unlock(memory.id, "user-ghost")

    assert (await memory_store.get(memory.id)).unlock_count == 0
    assert await engine.list_unlocks_for_memory(memory.id) == []


@pytest.mark.asyncio
async def test_repeat_unlocks_can_be_disabled(add_memory, memory_store, unlock_store, user_store):
    engine = UnlockEngine(memory_store, unlock_store, user_store, allow_repeat_unlocks=False)
    memory = await add_memory(owner_id=ALICE)

    await engine.unlock(memory.id, BOB)
    with pytest.raises(Conflict):
        await engine.unlock(memory.id, BOB)
    await engine.unlock(memory.id, CAROL)

    assert (await memory_store.get(memory.id)).unlock_count == 2
    assert await engine.count_for_memory(memory.id) == 2


@pytest.mark.asyncio
async def test_unlock_queries_by_user(add_memory, engine):
    first = await add_memory(owner_id=ALICE)
    second = await add_memory(owner_id=CAROL)

    await engine.unlock(first.id, BOB)
    await engine.unlock(second.id, BOB)
    await engine.unlock(second.id, ALICE)

    assert await engine.count_for_user(BOB) == 2
    assert {u.memory_id for u in await engine.list_unlocks_by_user(BOB)} == {first.id, second.id}
    assert await engine.has_unlocked(first.id, ALICE) is False


@pytest.mark.asyncio
async def test_user_stats(add_memory, engine):
    joy = await add_memory(owner_id=ALICE, emotion="joy")
    await add_memory(owner_id=ALICE, emotion="joy")
    await add_memory(owner_id=ALICE, emotion="calm")
    bobs = await add_memory(owner_id=BOB)

    await engine.unlock(joy.id, BOB)
    await engine.unlock(joy.id, CAROL)
    await engine.unlock(bobs.id, ALICE)

    stats = await engine.user_stats(ALICE)
    assert stats.total_memories == 3
    assert stats.memories_unlocked == 1
    assert stats.echoes_received == 2
    assert stats.favorite_emotion == "joy"

    empty = await engine.user_stats(CAROL)
    assert empty.to_dict() == {
        "total_memories": 0,
        "memories_unlocked": 1,
        "echoes_received": 0,
        "favorite_emotion": None,
    }


class FailingCounterStore(InMemoryMemoryStore):
    async def increment_unlock_count(self, memory_id: str) -> bool:
        raise RuntimeError("counter unavailable")


@pytest.mark.asyncio
async def test_counter_failure_keeps_unlock(caplog):
    """Unlock stands when the increment fails; the mismatch is logged."""
    memories = FailingCounterStore()
    unlocks = InMemoryUnlockStore(memories)
    engine = UnlockEngine(memories, unlocks)

    memory = await memories.create(
        Memory(owner_id=ALICE, title="t", emotion="joy", latitude=0.0, longitude=0.0)
    )

    with caplog.at_level(logging.ERROR, logger="echomap.unlock.engine"):
        unlock = await engine.unlock(memory.id, BOB)

    assert unlock.id
    assert await engine.count_for_memory(memory.id) == 1
    assert (await memories.get(memory.id)).unlock_count == 0
    assert "counter increment failed" in caplog.text
