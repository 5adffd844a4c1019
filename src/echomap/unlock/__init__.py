"""Unlock module - turns a discovery into a permanent echo record."""

from echomap.unlock.engine import UnlockEngine, UserStats

__all__ = ["UnlockEngine", "UserStats"]
