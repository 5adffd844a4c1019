"""Auth module - resolves opaque bearer credentials to user ids."""

from echomap.auth.identity import BearerTokenResolver, IdentityResolver, issue_token

__all__ = ["IdentityResolver", "BearerTokenResolver", "issue_token"]
