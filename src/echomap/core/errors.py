"""Error taxonomy for the discovery and unlock engine."""


class EchoError(Exception):
    """Base class for errors surfaced to callers."""

    code = "echo_error"


class ValidationError(EchoError):
    """Missing or invalid required field."""

    code = "validation_error"


class NotFound(EchoError):
    """Unknown memory or user id."""

    code = "not_found"


class Unauthenticated(EchoError):
    """Credential missing, invalid or expired."""

    code = "unauthenticated"


class Conflict(EchoError):
    """Duplicate unlock when repeat unlocks are disabled."""

    code = "conflict"
