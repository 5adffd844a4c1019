"""
Memory module - records and persistence.

Records:
- Memory: geotagged, emotion-labeled note
- MemoryUnlock: one reveal of a memory (with optional echo)
- User: identity reference

Storage: SQLite (aiosqlite) or in-memory dicts for tests
"""
