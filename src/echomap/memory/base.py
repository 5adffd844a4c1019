"""
Memory records and store interfaces.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from echomap.core.errors import ValidationError


class AccessType(Enum):
    """Who may discover a memory."""

    PUBLIC = "public"
    FRIENDS = "friends"
    EMOTION_MATCH = "emotion_match"
    PRIVATE = "private"


@dataclass
class User:
    """Identity reference for ownership and exclusion checks."""

    id: str
    username: str
    email: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Memory:
    """Geotagged, emotion-labeled note left by a user."""

    owner_id: str
    title: str
    emotion: str
    latitude: float
    longitude: float
    id: str = ""  # assigned on create
    description: str | None = None
    content: str | None = None  # transcript or text
    audio_url: str | None = None
    audio_data: str | None = None  # inline payload, opaque
    emotion_confidence: float = 0.0
    location_name: str | None = None
    duration: int = 0  # seconds
    access_type: AccessType = AccessType.PUBLIC
    is_active: bool = True
    unlock_count: int = 0
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "audio_url": self.audio_url,
            "audio_data": self.audio_data,
            "emotion": self.emotion,
            "emotion_confidence": self.emotion_confidence,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "location_name": self.location_name,
            "duration": self.duration,
            "access_type": self.access_type.value,
            "is_active": self.is_active,
            "unlock_count": self.unlock_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class MemoryUnlock:
    """One reveal of a memory by a user, with the optional echo."""

    memory_id: str
    unlocked_by: str
    id: str = ""  # assigned on add
    echo_content: str | None = None
    echo_audio_url: str | None = None
    unlocked_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "memory_id": self.memory_id,
            "unlocked_by": self.unlocked_by,
            "echo_content": self.echo_content,
            "echo_audio_url": self.echo_audio_url,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
        }


@dataclass
class MemoryQuery:
    """Store-level filter. None means "don't filter on this"."""

    active_only: bool = True
    access_types: tuple[AccessType, ...] | None = None
    exclude_owner_id: str | None = None
    emotion: str | None = None
    center: tuple[float, float] | None = None  # (latitude, longitude)
    radius: float | None = None  # degree units, planar
    recent: bool = False
    limit: int | None = None


# Fields an owner may edit after creation
UPDATABLE_FIELDS = ("title", "description", "emotion")


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def validate_new_memory(memory: Memory) -> None:
    """Raise ValidationError when a required field is absent or a coordinate isn't finite."""
    missing = []
    if not memory.owner_id:
        missing.append("owner_id")
    if _blank(memory.title):
        missing.append("title")
    if _blank(memory.emotion):
        missing.append("emotion")
    if memory.latitude is None:
        missing.append("latitude")
    if memory.longitude is None:
        missing.append("longitude")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for name in ("latitude", "longitude"):
        value = getattr(memory, name)
        if not math.isfinite(value):
            raise ValidationError(f"{name.capitalize()} must be finite, got {value}")


def validate_memory_update(changes: dict[str, Any]) -> None:
    """Only title, description and emotion may change; title and emotion stay non-blank."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
    blank = [name for name in ("title", "emotion") if name in changes and _blank(changes[name])]
    if blank:
        raise ValidationError(f"Missing required fields: {', '.join(blank)}")


class MemoryStore(ABC):
    """Memory record storage. Single source of truth for unlock counts."""

    @abstractmethod
    async def create(self, memory: Memory) -> Memory:
        """Validate and persist, assigning id and created_at."""
        ...

    @abstractmethod
    async def get(self, memory_id: str) -> Memory | None:
        ...

    @abstractmethod
    async def list_by_owner(self, owner_id: str, recent: bool = False) -> list[Memory]:
        ...

    @abstractmethod
    async def increment_unlock_count(self, memory_id: str) -> bool:
        """Atomically add 1 to the counter. False if memory is unknown."""
        ...

    @abstractmethod
    async def set_active(self, memory_id: str, active: bool) -> bool:
        ...

    @abstractmethod
    async def update(self, memory_id: str, **changes: Any) -> Memory | None:
        """Apply validated edits to title, description or emotion. None if unknown."""
        ...

    @abstractmethod
    async def query(self, criteria: MemoryQuery) -> list[Memory]:
        ...

    @abstractmethod
    async def count_by_emotion(self, active_only: bool = True) -> dict[str, int]:
        ...


class UnlockStore(ABC):
    """Append-only storage for unlock records."""

    @abstractmethod
    async def add(self, unlock: MemoryUnlock) -> MemoryUnlock:
        """Persist, assigning id and unlocked_at."""
        ...

    @abstractmethod
    async def list_by_memory(self, memory_id: str) -> list[MemoryUnlock]:
        ...

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[MemoryUnlock]:
        ...

    @abstractmethod
    async def exists(self, memory_id: str, user_id: str) -> bool:
        ...

    @abstractmethod
    async def count_by_memory(self, memory_id: str) -> int:
        ...

    @abstractmethod
    async def count_by_user(self, user_id: str) -> int:
        ...


class UserStore(ABC):
    """Read access to identities owned by the account system."""

    @abstractmethod
    async def add_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...
