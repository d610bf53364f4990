"""Admin endpoints for watcher settings."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from perfwatch.core.dependencies import require_admin
from perfwatch.core.security import Actor
from perfwatch.db.session import get_db
from perfwatch.observability.logging import audit_log
from perfwatch.schemas.perf_settings import PerfSettingsResponse, PerfSettingsUpdate
from perfwatch.services.perf_settings import get_settings_row, load_settings, save_settings

router = APIRouter(prefix="/admin/perf/settings", tags=["Admin - Performance"])


@router.get(
    "",
    response_model=PerfSettingsResponse,
    summary="Get watcher settings",
    description="Stored settings merged over defaults, coerced and clamped.",
)
def get_watcher_settings(
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(require_admin),
) -> PerfSettingsResponse:
    """Get watcher settings."""
    row = get_settings_row(db)
    return PerfSettingsResponse(
        data=load_settings(db),
        updated_at=row.updated_at if row else None,
        updated_by_user_id=row.updated_by_user_id if row else None,
    )


@router.put(
    "",
    response_model=PerfSettingsResponse,
    summary="Update watcher settings",
    description="Out-of-range values are clamped; omitted fields reset to their defaults.",
)
def update_watcher_settings(
    request: PerfSettingsUpdate,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(require_admin),
) -> PerfSettingsResponse:
    """Update watcher settings."""
    try:
        saved = save_settings(db, request.data, updated_by_user_id=current_actor.user_id)
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update settings",
        ) from e

    audit_log(
        "perf.settings.saved",
        actor_id=str(current_actor.user_id),
        action="update_settings",
        settings=saved.model_dump(),
    )

    row = get_settings_row(db)
    return PerfSettingsResponse(
        data=saved,
        updated_at=row.updated_at if row else None,
        updated_by_user_id=current_actor.user_id,
    )
