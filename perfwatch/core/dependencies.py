"""FastAPI dependencies for authentication and authorization."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from perfwatch.core.app_exceptions import AccessDeniedError
from perfwatch.core.config import settings
from perfwatch.core.security import Actor, actor_from_payload, verify_access_token
from perfwatch.services.perf_recorder import resolve_screen


def get_current_actor(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """Dependency to get the current authenticated actor from the bearer token."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid authorization scheme")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
        ) from None

    try:
        actor = actor_from_payload(verify_access_token(token))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {str(e)}",
        ) from e

    if not actor.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
        )
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require one of the configured ADMIN_ROLES."""
    if not actor.has_any_role(settings.admin_roles):
        raise AccessDeniedError(settings.admin_roles)
    return actor


def screen(screen_id: str):
    """Dependency factory: tell the watcher which admin screen this route renders."""

    def _resolve() -> None:
        resolve_screen(screen_id)

    return Depends(_resolve)
