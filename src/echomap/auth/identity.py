"""Identity resolution from bearer credentials."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

import jwt

from echomap.core.errors import Unauthenticated
from echomap.core.logging import get_logger

logger = get_logger("auth.identity")

BEARER_PREFIX = "Bearer "


class IdentityResolver(ABC):
    """Maps an opaque credential to a user id."""

    @abstractmethod
    def resolve(self, credential: str | None) -> str:
        """Return the user id, or raise Unauthenticated."""
        ...


class BearerTokenResolver(IdentityResolver):
    """Resolves signed JWT bearer tokens; the user id is the "sub" claim."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def resolve(self, credential: str | None) -> str:
        if not credential:
            raise Unauthenticated("Authentication required")

        token = credential
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):]

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise Unauthenticated("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token: {e}")
            raise Unauthenticated("Invalid token") from e

        user_id = claims["sub"]
        if not isinstance(user_id, str) or not user_id:
            raise Unauthenticated("Invalid token subject")
        return user_id


def issue_token(
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(hours=24),
) -> str:
    """Sign a bearer token for a user id (local tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, secret, algorithm=algorithm)
