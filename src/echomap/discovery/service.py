"""Discovery service - visibility and proximity filtering over the memory store."""

from dataclasses import dataclass, field
from typing import Any

from echomap.core.errors import NotFound, ValidationError
from echomap.core.logging import get_logger
from echomap.discovery.policy import VisibilityPolicy
from echomap.memory.base import Memory, MemoryQuery, MemoryStore

logger = get_logger("discovery.service")


@dataclass
class MapSnapshot:
    """Global emotion map: per-emotion counts plus every public memory."""

    emotion_counts: dict[str, int] = field(default_factory=dict)
    memories: list[Memory] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "emotion_counts": dict(self.emotion_counts),
            "memories": [m.to_dict() for m in self.memories],
        }


class DiscoveryService:
    """Surfaces memories a viewer is permitted to see.

    A memory is visible when it is active, its access type has a visibility
    predicate that admits the viewer, and (for personal discovery) the viewer
    is not its owner. Nearby search uses planar distance in degree units.
    """

    def __init__(self, memories: MemoryStore, policy: VisibilityPolicy | None = None):
        self.memories = memories
        self.policy = policy or VisibilityPolicy()

    async def _visible(self, criteria: MemoryQuery, viewer_id: str | None) -> list[Memory]:
        criteria.active_only = True
        criteria.access_types = self.policy.discoverable_types
        limit = criteria.limit
        if not self.policy.unconditional:
            # Predicates can reject rows, so the store must not cut the result short
            criteria.limit = None
        found = await self.memories.query(criteria)
        visible = [m for m in found if self.policy.admits(m, viewer_id)]
        return visible if limit is None else visible[:limit]

    async def discover_nearby(
        self,
        viewer_id: str,
        latitude: float,
        longitude: float,
        radius: float,
        emotion: str | None = None,
    ) -> list[Memory]:
        """
        Find memories within radius of a point, excluding the viewer's own.

        Args:
            viewer_id: Identity performing the discovery
            latitude: Center latitude
            longitude: Center longitude
            radius: Planar radius in degree units (not kilometers)
            emotion: Exact, case-sensitive emotion label to match

        Returns:
            Visible memories inside the radius
        """
        if latitude is None or longitude is None:
            raise ValidationError("Latitude and longitude are required")
        if radius is None or radius < 0:
            raise ValidationError(f"Radius must be non-negative, got {radius}")

        results = await self._visible(
            MemoryQuery(
                exclude_owner_id=viewer_id,
                emotion=emotion,
                center=(latitude, longitude),
                radius=radius,
            ),
            viewer_id,
        )
        logger.debug(
            f"Nearby ({latitude}, {longitude}) r={radius} emotion={emotion}: "
            f"{len(results)} memories for {viewer_id}"
        )
        return results

    async def discover_all_public(
        self, emotion: str | None = None, exclude_viewer_id: str | None = None
    ) -> list[Memory]:
        """All visible memories regardless of distance, optionally by emotion."""
        return await self._visible(
            MemoryQuery(exclude_owner_id=exclude_viewer_id, emotion=emotion),
            exclude_viewer_id,
        )

    async def discover_recent_public(self, limit: int = 20) -> list[Memory]:
        """Most recently created visible memories, newest first."""
        if limit < 0:
            raise ValidationError(f"Limit must be non-negative, got {limit}")
        return await self._visible(MemoryQuery(recent=True, limit=limit), None)

    async def list_owned(self, viewer_id: str, recent: bool = True) -> list[Memory]:
        """Viewer's own memories in any state, newest first by default."""
        return await self.memories.list_by_owner(viewer_id, recent=recent)

    async def get_memory(self, memory_id: str) -> Memory:
        memory = await self.memories.get(memory_id)
        if memory is None:
            raise NotFound(f"Memory not found: {memory_id}")
        return memory

    async def emotion_counts(self) -> dict[str, int]:
        """Active memories per emotion, across all owners and access types."""
        return await self.memories.count_by_emotion(active_only=True)

    async def global_map_snapshot(self) -> MapSnapshot:
        return MapSnapshot(
            emotion_counts=await self.emotion_counts(),
            memories=await self.discover_all_public(),
        )
