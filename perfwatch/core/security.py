"""Bearer token handling: the host application's access tokens resolve to an Actor."""

import re
from dataclasses import dataclass, field
from typing import Any

import jwt

from perfwatch.core.config import settings
from perfwatch.core.logging import get_logger

logger = get_logger(__name__)

_ROLE_KEY_RE = re.compile(r"[^a-z0-9_\-]")


def sanitize_key(value: str) -> str:
    """Lower-case and strip everything but [a-z0-9_-]."""
    return _ROLE_KEY_RE.sub("", str(value).lower())


@dataclass(frozen=True)
class Actor:
    """The authenticated user behind a request (0 / no roles when anonymous)."""

    user_id: int = 0
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id > 0

    def has_any_role(self, allowed: list[str]) -> bool:
        return any(role in allowed for role in self.roles)


ANONYMOUS = Actor()


def verify_access_token(token: str) -> dict[str, Any]:
    """Verify and decode a JWT access token."""
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET must be set")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
        if payload.get("type") != "access":
            raise jwt.InvalidTokenError("Token is not an access token")
        return payload
    except jwt.ExpiredSignatureError:
        raise jwt.InvalidTokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {e}")


def actor_from_payload(payload: dict[str, Any]) -> Actor:
    """Build an Actor from decoded claims. Roles keep their order, duplicates dropped."""
    user_id = int(payload.get("sub") or 0)
    raw_roles = payload.get("roles")
    if raw_roles is None and payload.get("role"):
        raw_roles = [payload["role"]]

    roles: list[str] = []
    for role in raw_roles or []:
        key = sanitize_key(role)
        if key and key not in roles:
            roles.append(key)
    return Actor(user_id=max(0, user_id), roles=tuple(roles))


def actor_from_authorization(authorization: str | None) -> Actor:
    """Best-effort actor resolution for instrumentation; never raises."""
    if not authorization:
        return ANONYMOUS
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            return ANONYMOUS
        return actor_from_payload(verify_access_token(token))
    except Exception as e:
        logger.debug(f"Could not resolve actor from token: {e}")
        return ANONYMOUS
