"""
Core module - configuration, shared types, errors.

Components:
- config: Settings management via pydantic-settings
- types: Shared result type (ActionResult)
- errors: Typed error taxonomy raised by the engine
- logging: Structured logging setup
"""

from echomap.core.config import Settings
from echomap.core.errors import Conflict, EchoError, NotFound, Unauthenticated, ValidationError
from echomap.core.types import ActionResult

__all__ = [
    "Settings",
    "ActionResult",
    "EchoError",
    "ValidationError",
    "NotFound",
    "Unauthenticated",
    "Conflict",
]
