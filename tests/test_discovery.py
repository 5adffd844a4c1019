"""Tests for the visibility and proximity filter."""

import pytest

from echomap.core.errors import NotFound, ValidationError
from echomap.discovery.policy import VisibilityPolicy
from echomap.discovery.service import DiscoveryService
from echomap.memory.base import AccessType

from conftest import ALICE, BOB, CAROL


@pytest.fixture
def discovery(memory_store):
    return DiscoveryService(memory_store)


def ids(memories):
    return {m.id for m in memories}


@pytest.mark.asyncio
async def test_nearby_radius_scenario(add_memory, discovery):
    """Viewer just off the memory sees it with radius 1.0 but not 0.0001."""
    memory = await add_memory(owner_id=ALICE, latitude=10.0, longitude=10.0, emotion="joy")

    near = await discovery.discover_nearby(BOB, 10.0005, 10.0005, 1.0)
    assert ids(near) == {memory.id}

    tight = await discovery.discover_nearby(BOB, 10.0005, 10.0005, 0.0001)
    assert tight == []


@pytest.mark.asyncio
async def test_nearby_excludes_own_memories(add_memory, discovery):
    await add_memory(owner_id=ALICE)
    bobs = await add_memory(owner_id=BOB)

    found = await discovery.discover_nearby(ALICE, 10.0, 10.0, 1.0)
    assert ids(found) == {bobs.id}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "access_type", [AccessType.FRIENDS, AccessType.EMOTION_MATCH, AccessType.PRIVATE]
)
async def test_non_public_never_discovered(add_memory, discovery, access_type):
    await add_memory(owner_id=ALICE, access_type=access_type)

    assert await discovery.discover_nearby(BOB, 10.0, 10.0, 100.0) == []
    assert await discovery.discover_all_public() == []
    assert await discovery.discover_all_public(exclude_viewer_id=BOB) == []
    assert await discovery.discover_recent_public() == []


@pytest.mark.asyncio
async def test_inactive_never_discovered(add_memory, memory_store, discovery):
    memory = await add_memory(owner_id=ALICE)
    await memory_store.set_active(memory.id, False)

    assert await discovery.discover_nearby(BOB, 10.0, 10.0, 100.0) == []
    assert await discovery.discover_all_public() == []

    await memory_store.set_active(memory.id, True)
    assert ids(await discovery.discover_all_public()) == {memory.id}


@pytest.mark.asyncio
async def test_emotion_filter_exact(add_memory, discovery):
    """Emotion filter is exact and case-sensitive."""
    joy = await add_memory(owner_id=ALICE, emotion="joy")

    assert await discovery.discover_all_public(emotion="sad") == []
    assert ids(await discovery.discover_all_public(emotion="joy")) == {joy.id}
    assert await discovery.discover_all_public(emotion="Joy") == []
    assert await discovery.discover_nearby(BOB, 10.0, 10.0, 1.0, emotion="JOY") == []
    assert ids(await discovery.discover_nearby(BOB, 10.0, 10.0, 1.0, emotion="joy")) == {joy.id}


@pytest.mark.asyncio
async def test_nearby_is_planar(add_memory, discovery):
    """Points across the antimeridian are far apart in the planar metric."""
    await add_memory(owner_id=ALICE, latitude=0.0, longitude=179.9)

    assert await discovery.discover_nearby(BOB, 0.0, -179.9, 1.0) == []
    assert len(await discovery.discover_nearby(BOB, 0.0, -179.9, 360.0)) == 1


@pytest.mark.asyncio
async def test_nearby_rejects_negative_radius(discovery):
    with pytest.raises(ValidationError):
        await discovery.discover_nearby(BOB, 0.0, 0.0, -1.0)


@pytest.mark.asyncio
async def test_all_public_exclusion_is_optional(add_memory, discovery):
    alices = await add_memory(owner_id=ALICE)
    bobs = await add_memory(owner_id=BOB, latitude=-40.0, longitude=170.0)

    assert ids(await discovery.discover_all_public()) == {alices.id, bobs.id}
    assert ids(await discovery.discover_all_public(exclude_viewer_id=ALICE)) == {bobs.id}


@pytest.mark.asyncio
async def test_recent_public_newest_first(add_memory, discovery):
    await add_memory(title="old")
    await add_memory(title="hidden", access_type=AccessType.PRIVATE)
    await add_memory(title="middle", owner_id=BOB)
    await add_memory(title="new", owner_id=CAROL)

    recent = await discovery.discover_recent_public(limit=2)
    assert [m.title for m in recent] == ["new", "middle"]


@pytest.mark.asyncio
async def test_list_owned_includes_everything(add_memory, memory_store, discovery):
    """Owners see their own inactive and private memories."""
    a = await add_memory(owner_id=ALICE, access_type=AccessType.PRIVATE)
    b = await add_memory(owner_id=ALICE)
    await memory_store.set_active(b.id, False)
    await add_memory(owner_id=BOB)

    owned = await discovery.list_owned(ALICE)
    assert [m.id for m in owned] == [b.id, a.id]


@pytest.mark.asyncio
async def test_get_memory_unknown(discovery):
    with pytest.raises(NotFound):
        await discovery.get_memory("does-not-exist")


@pytest.mark.asyncio
async def test_emotion_counts_are_global(add_memory, memory_store, discovery):
    """Counts include every owner and access type but only active memories."""
    await add_memory(owner_id=ALICE, emotion="joy")
    await add_memory(owner_id=BOB, emotion="joy", access_type=AccessType.PRIVATE)
    await add_memory(owner_id=BOB, emotion="calm", access_type=AccessType.FRIENDS)
    inactive = await add_memory(owner_id=CAROL, emotion="grief")
    await memory_store.set_active(inactive.id, False)

    assert await discovery.emotion_counts() == {"joy": 2, "calm": 1}


@pytest.mark.asyncio
async def test_global_map_snapshot(add_memory, discovery):
    public = await add_memory(owner_id=ALICE, emotion="joy")
    await add_memory(owner_id=BOB, emotion="peace", access_type=AccessType.PRIVATE)

    snapshot = await discovery.global_map_snapshot()
    assert snapshot.emotion_counts == {"joy": 1, "peace": 1}
    assert ids(snapshot.memories) == {public.id}

    data = snapshot.to_dict()
    assert data["memories"][0]["access_type"] == "public"


@pytest.mark.asyncio
async def test_registered_policy_opens_access_type(add_memory, memory_store):
    """A predicate registered for FRIENDS makes those memories discoverable."""
    friends = {(ALICE, BOB)}
    policy = VisibilityPolicy()
    policy.register(
        AccessType.FRIENDS,
        lambda memory, viewer: (memory.owner_id, viewer) in friends,
    )
    discovery = DiscoveryService(memory_store, policy)

    memory = await add_memory(owner_id=ALICE, access_type=AccessType.FRIENDS)

    assert ids(await discovery.discover_nearby(BOB, 10.0, 10.0, 1.0)) == {memory.id}
    assert await discovery.discover_nearby(CAROL, 10.0, 10.0, 1.0) == []


def test_default_policy_only_public():
    policy = VisibilityPolicy()
    assert policy.discoverable_types == (AccessType.PUBLIC,)
    assert policy.unconditional is True


@pytest.mark.asyncio
async def test_recent_limit_applies_after_visibility(add_memory, memory_store):
    """Rejected rows don't use up the recent feed's limit."""
    policy = VisibilityPolicy()
    policy.register(AccessType.FRIENDS, lambda memory, viewer: viewer is not None)
    assert policy.unconditional is False
    discovery = DiscoveryService(memory_store, policy)

    await add_memory(title="p1")
    await add_memory(title="p2", owner_id=BOB)
    await add_memory(title="friends only", owner_id=CAROL, access_type=AccessType.FRIENDS)

    recent = await discovery.discover_recent_public(limit=2)
    assert [m.title for m in recent] == ["p2", "p1"]

    assert await discovery.discover_recent_public(limit=0) == []
