"""Unlock engine - records unlocks and maintains the memory unlock counter."""

from collections import Counter
from dataclasses import dataclass
from typing import Any

from echomap.core.errors import Conflict, NotFound
from echomap.core.logging import get_logger
from echomap.memory.base import MemoryStore, MemoryUnlock, UnlockStore, UserStore

logger = get_logger("unlock.engine")


@dataclass
class UserStats:
    """Per-user activity summary."""

    total_memories: int = 0
    memories_unlocked: int = 0  # unlocks performed by the user
    echoes_received: int = 0  # unlocks of the user's memories by anyone
    favorite_emotion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_memories": self.total_memories,
            "memories_unlocked": self.memories_unlocked,
            "echoes_received": self.echoes_received,
            "favorite_emotion": self.favorite_emotion,
        }


class UnlockEngine:
    """Records unlock events and keeps Memory.unlock_count in step with them.

    The unlock record and the counter increment are separate writes, not one
    transaction. If the increment fails after the record is written the
    unlock stands and the mismatch is logged.
    """

    def __init__(
        self,
        memories: MemoryStore,
        unlocks: UnlockStore,
        users: UserStore | None = None,
        allow_repeat_unlocks: bool = True,
    ):
        """
        Initialize unlock engine.

        Args:
            memories: Memory store owning the unlock counter
            unlocks: Store for unlock records
            users: Optional user store used to verify unlocker identities
            allow_repeat_unlocks: When False, a second unlock of the same
                memory by the same user raises Conflict
        """
        self.memories = memories
        self.unlocks = unlocks
        self.users = users
        self.allow_repeat_unlocks = allow_repeat_unlocks

    async def unlock(
        self,
        memory_id: str,
        unlocker_id: str,
        echo_content: str | None = None,
        echo_audio_url: str | None = None,
    ) -> MemoryUnlock:
        """
        Unlock a memory on behalf of a user.

        Args:
            memory_id: Memory to unlock
            unlocker_id: Resolved identity of the caller
            echo_content: Optional echo text
            echo_audio_url: Optional echo audio reference

        Returns:
            The persisted MemoryUnlock

        Raises:
            NotFound: Memory or unlocker is unknown
            Conflict: Repeat unlock while repeat unlocks are disabled
        """
        memory = await self.memories.get(memory_id)
        if memory is None:
            raise NotFound(f"Memory not found: {memory_id}")

        if self.users is not None and await self.users.get_user(unlocker_id) is None:
            raise NotFound(f"User not found: {unlocker_id}")

        if not self.allow_repeat_unlocks and await self.unlocks.exists(memory_id, unlocker_id):
            raise Conflict(f"Memory {memory_id} already unlocked by {unlocker_id}")

        unlock = await self.unlocks.add(
            MemoryUnlock(
                memory_id=memory_id,
                unlocked_by=unlocker_id,
                echo_content=echo_content,
                echo_audio_url=echo_audio_url,
            )
        )

        try:
            counted = await self.memories.increment_unlock_count(memory_id)
        except Exception as e:
            logger.error(
                f"Unlock {unlock.id} recorded but counter increment failed "
                f"for memory {memory_id}: {e}",
                exc_info=True,
            )
        else:
            if not counted:
                logger.error(
                    f"Unlock {unlock.id} recorded but memory {memory_id} vanished "
                    "before its counter was incremented"
                )

        logger.info(f"Memory {memory_id} unlocked by {unlocker_id} ({unlock.id})")
        return unlock

    async def list_unlocks_for_memory(self, memory_id: str) -> list[MemoryUnlock]:
        return await self.unlocks.list_by_memory(memory_id)

    async def list_unlocks_by_user(self, user_id: str) -> list[MemoryUnlock]:
        return await self.unlocks.list_by_user(user_id)

    async def has_unlocked(self, memory_id: str, user_id: str) -> bool:
        """Whether the user has unlocked the memory at least once."""
        return await self.unlocks.exists(memory_id, user_id)

    async def count_for_memory(self, memory_id: str) -> int:
        return await self.unlocks.count_by_memory(memory_id)

    async def count_for_user(self, user_id: str) -> int:
        return await self.unlocks.count_by_user(user_id)

    async def user_stats(self, user_id: str) -> UserStats:
        """Summarize a user's memories and unlock activity."""
        owned = await self.memories.list_by_owner(user_id)
        emotions = Counter(m.emotion for m in owned)
        favorite = emotions.most_common(1)[0][0] if emotions else None
        return UserStats(
            total_memories=len(owned),
            memories_unlocked=await self.unlocks.count_by_user(user_id),
            echoes_received=sum(m.unlock_count for m in owned),
            favorite_emotion=favorite,
        )
