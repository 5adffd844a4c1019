"""
Shared type definitions.

Result envelope returned across the request/response boundary.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ActionResult:
    """Result of an operation at the service boundary."""

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None  # machine-readable failure code

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str) -> "ActionResult":
        return cls(success=False, error=error, code=code)
