"""SQLite store for memories, unlocks and user references."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiosqlite

from echomap.core.errors import NotFound
from echomap.core.logging import get_logger
from echomap.discovery.geo import planar_distance
from echomap.memory.base import (
    AccessType,
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

logger = get_logger("memory.store")


# Python 3.12+ fix: Register datetime adapters explicitly
def _adapt_datetime(dt: datetime) -> str:
    """Convert datetime to ISO format string for SQLite storage."""
    return dt.isoformat()


def _convert_datetime(val: bytes) -> datetime:
    """Convert ISO format string from SQLite to datetime."""
    return datetime.fromisoformat(val.decode())


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    created_at DATETIME NOT NULL
);

CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    description TEXT,
    content TEXT,
    audio_url TEXT,
    audio_data TEXT,
    emotion TEXT NOT NULL,
    emotion_confidence REAL DEFAULT 0,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    location_name TEXT,
    duration INTEGER DEFAULT 0,
    access_type TEXT NOT NULL DEFAULT 'public',
    is_active INTEGER NOT NULL DEFAULT 1,
    unlock_count INTEGER NOT NULL DEFAULT 0 CHECK (unlock_count >= 0),
    created_at DATETIME NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_owner ON memories(owner_id);
CREATE INDEX IF NOT EXISTS idx_memories_discovery
    ON memories(access_type, emotion) WHERE is_active = 1;

-- No uniqueness on (memory_id, unlocked_by): repeat unlocks are recorded
CREATE TABLE IF NOT EXISTS memory_unlocks (
    id TEXT PRIMARY KEY,
    memory_id TEXT NOT NULL REFERENCES memories(id),
    unlocked_by TEXT NOT NULL REFERENCES users(id),
    echo_content TEXT,
    echo_audio_url TEXT,
    unlocked_at DATETIME NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_unlocks_memory ON memory_unlocks(memory_id);
CREATE INDEX IF NOT EXISTS idx_unlocks_user ON memory_unlocks(unlocked_by);
"""

MEMORY_COLUMNS = (
    "id, owner_id, title, description, content, audio_url, audio_data, emotion, "
    "emotion_confidence, latitude, longitude, location_name, duration, access_type, "
    "is_active, unlock_count, created_at"
)

UNLOCK_COLUMNS = "id, memory_id, unlocked_by, echo_content, echo_audio_url, unlocked_at"


def _row_to_memory(row: Any) -> Memory:
    return Memory(
        id=row[0],
        owner_id=row[1],
        title=row[2],
        description=row[3],
        content=row[4],
        audio_url=row[5],
        audio_data=row[6],
        emotion=row[7],
        emotion_confidence=row[8] or 0.0,
        latitude=row[9],
        longitude=row[10],
        location_name=row[11],
        duration=row[12] or 0,
        access_type=AccessType(row[13]),
        is_active=bool(row[14]),
        unlock_count=row[15],
        created_at=row[16],
    )


def _is_foreign_key_error(error: sqlite3.IntegrityError) -> bool:
    return "FOREIGN KEY" in str(error)


def _row_to_unlock(row: Any) -> MemoryUnlock:
    return MemoryUnlock(
        id=row[0],
        memory_id=row[1],
        unlocked_by=row[2],
        echo_content=row[3],
        echo_audio_url=row[4],
        unlocked_at=row[5],
    )


class SQLiteStore(MemoryStore, UnlockStore, UserStore):
    """SQLite-backed store; one connection serves all three record types."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Use detect_types to enable our custom datetime converters
        self._conn = await aiosqlite.connect(
            self.db_path,
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        )
        await self._conn.execute("PRAGMA foreign_keys = ON")
        await self._conn.create_function(
            "planar_distance", 4, planar_distance, deterministic=True
        )
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        logger.info(f"Connected to store: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "SQLiteStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Store not connected. Call connect() first.")
        return self._conn

    # User references

    async def add_user(self, user: User) -> User:
        """Register a user identity."""
        user.id = user.id or str(uuid4())
        await self.conn.execute(
            "INSERT INTO users (id, username, email, created_at) VALUES (?, ?, ?, ?)",
            (user.id, user.username, user.email, user.created_at),
        )
        await self.conn.commit()
        return user

    async def get_user(self, user_id: str) -> User | None:
        async with self.conn.execute(
            "SELECT id, username, email, created_at FROM users WHERE id = ?",
            (user_id,),
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return User(id=row[0], username=row[1], email=row[2], created_at=row[3])
        return None

    # Memory operations

    async def create(self, memory: Memory) -> Memory:
        """Validate and insert a new memory."""
        validate_new_memory(memory)
        memory.id = str(uuid4())
        memory.created_at = datetime.now()
        memory.unlock_count = 0

        try:
            await self.conn.execute(
                f"INSERT INTO memories ({MEMORY_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    memory.id,
                    memory.owner_id,
                    memory.title,
                    memory.description,
                    memory.content,
                    memory.audio_url,
                    memory.audio_data,
                    memory.emotion,
                    memory.emotion_confidence,
                    memory.latitude,
                    memory.longitude,
                    memory.location_name,
                    memory.duration,
                    memory.access_type.value,
                    int(memory.is_active),
                    memory.unlock_count,
                    memory.created_at,
                ),
            )
        except sqlite3.IntegrityError as e:
            if not _is_foreign_key_error(e):
                raise
            raise NotFound(f"User not found: {memory.owner_id}") from e
        await self.conn.commit()
        logger.debug(f"Created memory {memory.id} for {memory.owner_id}")
        return memory

    async def get(self, memory_id: str) -> Memory | None:
        async with self.conn.execute(
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return _row_to_memory(row) if row else None

    async def list_by_owner(self, owner_id: str, recent: bool = False) -> list[Memory]:
        sql = f"SELECT {MEMORY_COLUMNS} FROM memories WHERE owner_id = ?"
        if recent:
            sql += " ORDER BY created_at DESC, rowid DESC"
        async with self.conn.execute(sql, (owner_id,)) as cursor:
            return [_row_to_memory(row) async for row in cursor]

    async def increment_unlock_count(self, memory_id: str) -> bool:
        """Single-statement increment; concurrent unlocks can't lose updates."""
        cursor = await self.conn.execute(
            "UPDATE memories SET unlock_count = unlock_count + 1 WHERE id = ?",
            (memory_id,),
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    async def set_active(self, memory_id: str, active: bool) -> bool:
        cursor = await self.conn.execute(
            "UPDATE memories SET is_active = ? WHERE id = ?",
            (int(active), memory_id),
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    async def update(self, memory_id: str, **changes: Any) -> Memory | None:
        """Update editable fields, returning the stored memory."""
        validate_memory_update(changes)
        if changes:
            # Column names come from UPDATABLE_FIELDS, checked above
            assignments = ", ".join(f"{name} = ?" for name in changes)
            cursor = await self.conn.execute(
                f"UPDATE memories SET {assignments} WHERE id = ?",
                (*changes.values(), memory_id),
            )
            await self.conn.commit()
            if cursor.rowcount == 0:
                return None
            logger.debug(f"Updated memory {memory_id}: {', '.join(changes)}")
        return await self.get(memory_id)

    async def query(self, criteria: MemoryQuery) -> list[Memory]:
        """Filter memories in SQL; distance uses the registered planar_distance."""
        conditions: list[str] = []
        params: list[Any] = []

        if criteria.active_only:
            conditions.append("is_active = 1")
        if criteria.access_types is not None:
            if not criteria.access_types:
                return []
            placeholders = ", ".join("?" for _ in criteria.access_types)
            conditions.append(f"access_type IN ({placeholders})")
            params.extend(a.value for a in criteria.access_types)
        if criteria.exclude_owner_id is not None:
            conditions.append("owner_id != ?")
            params.append(criteria.exclude_owner_id)
        if criteria.emotion is not None:
            conditions.append("emotion = ?")
            params.append(criteria.emotion)
        if criteria.center is not None and criteria.radius is not None:
            conditions.append("planar_distance(latitude, longitude, ?, ?) <= ?")
            params.extend([criteria.center[0], criteria.center[1], criteria.radius])

        sql = f"SELECT {MEMORY_COLUMNS} FROM memories"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        if criteria.recent:
            sql += " ORDER BY created_at DESC, rowid DESC"
        else:
            sql += " ORDER BY rowid"
        if criteria.limit is not None:
            sql += " LIMIT ?"
            params.append(criteria.limit)

        async with self.conn.execute(sql, params) as cursor:
            results = [_row_to_memory(row) async for row in cursor]
        logger.debug(f"Memory query returned {len(results)} rows")
        return results

    async def count_by_emotion(self, active_only: bool = True) -> dict[str, int]:
        sql = "SELECT emotion, COUNT(*) FROM memories"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " GROUP BY emotion"
        async with self.conn.execute(sql) as cursor:
            return {row[0]: row[1] async for row in cursor}

    # Unlock operations

    async def add(self, unlock: MemoryUnlock) -> MemoryUnlock:
        """Insert an unlock record."""
        unlock.id = str(uuid4())
        unlock.unlocked_at = datetime.now()
        try:
            await self.conn.execute(
                f"INSERT INTO memory_unlocks ({UNLOCK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    unlock.id,
                    unlock.memory_id,
                    unlock.unlocked_by,
                    unlock.echo_content,
                    unlock.echo_audio_url,
                    unlock.unlocked_at,
                ),
            )
        except sqlite3.IntegrityError as e:
            if not _is_foreign_key_error(e):
                raise
            raise NotFound(
                f"Unknown memory or user: {unlock.memory_id}, {unlock.unlocked_by}"
            ) from e
        await self.conn.commit()
        return unlock

    async def list_by_memory(self, memory_id: str) -> list[MemoryUnlock]:
        async with self.conn.execute(
            f"SELECT {UNLOCK_COLUMNS} FROM memory_unlocks WHERE memory_id = ? ORDER BY rowid",
            (memory_id,),
        ) as cursor:
            return [_row_to_unlock(row) async for row in cursor]

    async def list_by_user(self, user_id: str) -> list[MemoryUnlock]:
        async with self.conn.execute(
            f"SELECT {UNLOCK_COLUMNS} FROM memory_unlocks WHERE unlocked_by = ? ORDER BY rowid",
            (user_id,),
        ) as cursor:
            return [_row_to_unlock(row) async for row in cursor]

    async def exists(self, memory_id: str, user_id: str) -> bool:
        async with self.conn.execute(
            "SELECT 1 FROM memory_unlocks WHERE memory_id = ? AND unlocked_by = ? LIMIT 1",
            (memory_id, user_id),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def count_by_memory(self, memory_id: str) -> int:
        async with self.conn.execute(
            "SELECT COUNT(*) FROM memory_unlocks WHERE memory_id = ?", (memory_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0]

    async def count_by_user(self, user_id: str) -> int:
        async with self.conn.execute(
            "SELECT COUNT(*) FROM memory_unlocks WHERE unlocked_by = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0]
