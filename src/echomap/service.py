"""Request/response boundary.

Resolves the caller's identity, delegates to discovery and the unlock engine,
and turns typed errors into structured ActionResult failures.
"""

from collections.abc import Awaitable, Callable
from dataclasses import fields
from typing import Any

from echomap.auth.identity import BearerTokenResolver, IdentityResolver
from echomap.core.config import Settings
from echomap.core.errors import EchoError, NotFound, ValidationError
from echomap.core.logging import get_logger
from echomap.core.types import ActionResult
from echomap.discovery.policy import VisibilityPolicy
from echomap.discovery.service import DiscoveryService
from echomap.memory.base import AccessType, Memory, MemoryStore, UnlockStore, UserStore
from echomap.unlock.engine import UnlockEngine

logger = get_logger("service")

# Fields a caller may set when creating a memory
CREATE_FIELDS = {
    f.name for f in fields(Memory)
} - {"id", "owner_id", "unlock_count", "created_at"}
REQUIRED_FIELDS = ("title", "emotion", "latitude", "longitude")


class EchoService:
    """Operation surface for memory discovery and unlocks."""

    def __init__(
        self,
        discovery: DiscoveryService,
        engine: UnlockEngine,
        identity: IdentityResolver,
        users: UserStore,
        default_radius: float = 10.0,
        recent_limit: int = 20,
    ):
        self.discovery = discovery
        self.engine = engine
        self.identity = identity
        self.users = users
        self.default_radius = default_radius
        self.recent_limit = recent_limit

    @classmethod
    def from_stores(
        cls,
        memories: MemoryStore,
        unlocks: UnlockStore,
        users: UserStore,
        settings: Settings,
        policy: VisibilityPolicy | None = None,
    ) -> "EchoService":
        """Wire the service from stores and settings."""
        if settings.uses_default_secret:
            logger.warning(
                "Bearer tokens are signed with the built-in development secret; "
                "set ECHOMAP_TOKEN_SECRET"
            )
        return cls(
            discovery=DiscoveryService(memories, policy),
            engine=UnlockEngine(
                memories,
                unlocks,
                users,
                allow_repeat_unlocks=settings.allow_repeat_unlocks,
            ),
            identity=BearerTokenResolver(settings.token_secret, settings.token_algorithm),
            users=users,
            default_radius=settings.default_radius,
            recent_limit=settings.recent_limit,
        )

    async def _call(
        self, action: str, operation: Callable[[], Awaitable[Any]]
    ) -> ActionResult:
        try:
            return ActionResult.ok(await operation())
        except EchoError as e:
            logger.info(f"Failed to {action}: {e}")
            return ActionResult.fail(str(e), e.code)
        except Exception as e:
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            return ActionResult.fail(str(e), "internal_error")

    async def _viewer(self, credential: str | None) -> str:
        """Resolve credential to a known user id."""
        user_id = self.identity.resolve(credential)
        if await self.users.get_user(user_id) is None:
            raise NotFound(f"User not found: {user_id}")
        return user_id

    # Discovery

    async def discover_nearby(
        self,
        credential: str | None,
        latitude: float,
        longitude: float,
        radius: float | None = None,
        emotion: str | None = None,
    ) -> ActionResult:
        async def op() -> dict[str, Any]:
            viewer_id = await self._viewer(credential)
            found = await self.discovery.discover_nearby(
                viewer_id,
                latitude,
                longitude,
                self.default_radius if radius is None else radius,
                emotion,
            )
            return {"memories": [m.to_dict() for m in found]}

        return await self._call("get nearby memories", op)

    async def discover_all_public(
        self, emotion: str | None = None, credential: str | None = None
    ) -> ActionResult:
        """Public memories; the caller's own are excluded when a credential is given."""

        async def op() -> dict[str, Any]:
            viewer_id = await self._viewer(credential) if credential else None
            found = await self.discovery.discover_all_public(emotion, viewer_id)
            return {"memories": [m.to_dict() for m in found]}

        return await self._call("get public memories", op)

    async def discover_recent(self, limit: int | None = None) -> ActionResult:
        async def op() -> dict[str, Any]:
            found = await self.discovery.discover_recent_public(
                self.recent_limit if limit is None else limit
            )
            return {"memories": [m.to_dict() for m in found]}

        return await self._call("get recent memories", op)

    async def list_owned(self, credential: str | None) -> ActionResult:
        async def op() -> dict[str, Any]:
            viewer_id = await self._viewer(credential)
            owned = await self.discovery.list_owned(viewer_id)
            return {"memories": [m.to_dict() for m in owned]}

        return await self._call("get user memories", op)

    async def get_memory(self, memory_id: str) -> ActionResult:
        async def op() -> dict[str, Any]:
            memory = await self.discovery.get_memory(memory_id)
            return {"memory": memory.to_dict()}

        return await self._call("get memory", op)

    async def emotion_counts(self) -> ActionResult:
        async def op() -> dict[str, Any]:
            return {"emotion_counts": await self.discovery.emotion_counts()}

        return await self._call("get emotion counts", op)

    async def global_map_snapshot(self) -> ActionResult:
        async def op() -> dict[str, Any]:
            snapshot = await self.discovery.global_map_snapshot()
            return snapshot.to_dict()

        return await self._call("get emotion map data", op)

    # Memory lifecycle

    async def create_memory(self, credential: str | None, **values: Any) -> ActionResult:
        """
        Create a memory owned by the caller.

        Args:
            credential: Caller's bearer credential
            **values: Memory fields (title, emotion, latitude, longitude, ...);
                access_type may be an AccessType or its string value

        Returns:
            ActionResult with {"memory": ...} on success
        """

        async def op() -> dict[str, Any]:
            owner_id = await self._viewer(credential)
            memory = Memory(owner_id=owner_id, **_memory_fields(values))
            created = await self.discovery.memories.create(memory)
            logger.info(f"Memory {created.id} created by {owner_id}")
            return {"memory": created.to_dict()}

        return await self._call("create memory", op)

    async def _owned(self, credential: str | None, memory_id: str) -> Memory:
        viewer_id = await self._viewer(credential)
        memory = await self.discovery.get_memory(memory_id)
        if memory.owner_id != viewer_id:
            # Non-owners get the same answer as a missing memory
            raise NotFound(f"Memory not found: {memory_id}")
        return memory

    async def update_memory(
        self, credential: str | None, memory_id: str, **changes: Any
    ) -> ActionResult:
        """
        Edit title, description or emotion of one of the caller's memories.

        Only the keys given are changed; description=None clears it.

        Returns:
            ActionResult with {"memory": ...} on success
        """

        async def op() -> dict[str, Any]:
            await self._owned(credential, memory_id)
            updated = await self.discovery.memories.update(memory_id, **changes)
            if updated is None:
                raise NotFound(f"Memory not found: {memory_id}")
            logger.info(f"Memory {memory_id} edited: {', '.join(changes) or 'no changes'}")
            return {"memory": updated.to_dict()}

        return await self._call("update memory", op)

    async def set_memory_active(
        self, credential: str | None, memory_id: str, active: bool
    ) -> ActionResult:
        """Deactivate or reactivate one of the caller's memories."""

        async def op() -> dict[str, Any]:
            await self._owned(credential, memory_id)
            await self.discovery.memories.set_active(memory_id, active)
            logger.info(f"Memory {memory_id} {'activated' if active else 'deactivated'}")
            return {"memory_id": memory_id, "is_active": active}

        return await self._call("set memory active", op)

    # Unlocks

    async def unlock(
        self,
        credential: str | None,
        memory_id: str,
        echo_content: str | None = None,
        echo_audio_url: str | None = None,
    ) -> ActionResult:
        async def op() -> dict[str, Any]:
            viewer_id = await self._viewer(credential)
            unlock = await self.engine.unlock(
                memory_id, viewer_id, echo_content, echo_audio_url
            )
            return {"unlock": unlock.to_dict()}

        return await self._call("unlock memory", op)

    async def list_unlocks_for_memory(self, memory_id: str) -> ActionResult:
        async def op() -> dict[str, Any]:
            unlocks = await self.engine.list_unlocks_for_memory(memory_id)
            return {"unlocks": [u.to_dict() for u in unlocks]}

        return await self._call("get memory unlocks", op)

    async def user_stats(self, credential: str | None) -> ActionResult:
        async def op() -> dict[str, Any]:
            viewer_id = await self._viewer(credential)
            stats = await self.engine.user_stats(viewer_id)
            return stats.to_dict()

        return await self._call("get user stats", op)


def _memory_fields(values: dict[str, Any]) -> dict[str, Any]:
    """Check and coerce caller-supplied memory fields."""
    unknown = set(values) - CREATE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    # None falls back to the field default; required fields stay for validation
    data = {k: v for k, v in values.items() if v is not None}
    for name in REQUIRED_FIELDS:
        data.setdefault(name, None)

    for name in ("latitude", "longitude", "emotion_confidence"):
        if data.get(name) is not None:
            try:
                data[name] = float(data[name])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid {name}: {data[name]!r}") from e

    if data.get("duration") is not None:
        try:
            data["duration"] = int(data["duration"])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid duration: {data['duration']!r}") from e

    access = data.get("access_type")
    if access is not None and not isinstance(access, AccessType):
        try:
            data["access_type"] = AccessType(str(access).lower())
        except ValueError as e:
            raise ValidationError(f"Invalid access_type: {access!r}") from e

    return data
