"""Settings store for the watcher's singleton settings row."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from perfwatch.models.perf_settings import PerfWatcherSettings
from perfwatch.schemas.perf_settings import PerfSettingsData

SETTINGS_ROW_ID = 1


def _get_row(db: Session) -> PerfWatcherSettings | None:
    return db.get(PerfWatcherSettings, SETTINGS_ROW_ID)


def normalize(candidate: Any) -> PerfSettingsData:
    """Coerce and clamp a candidate mapping; unknown keys are dropped, missing ones defaulted."""
    if isinstance(candidate, PerfSettingsData):
        candidate = candidate.model_dump()
    if not isinstance(candidate, dict):
        candidate = {}
    return PerfSettingsData.model_validate(candidate)


def load_settings(db: Session) -> PerfSettingsData:
    """Stored settings merged over defaults, every field coerced and clamped.

    A missing row or unreadable payload yields the defaults; nothing is written.
    """
    row = _get_row(db)
    return normalize(row.data if row is not None else None)


def save_settings(
    db: Session,
    candidate: dict[str, Any] | PerfSettingsData,
    updated_by_user_id: int | None = None,
) -> PerfSettingsData:
    """Validate, clamp and persist.

    Each save is computed from the candidate plus hard defaults only: fields absent
    from the candidate reset to their default, they do not keep the stored value.
    """
    validated = normalize(candidate)

    row = _get_row(db)
    if row is None:
        row = PerfWatcherSettings(id=SETTINGS_ROW_ID, data={})
        db.add(row)

    row.data = validated.model_dump()
    row.updated_at = datetime.now(timezone.utc)
    row.updated_by_user_id = updated_by_user_id

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return validated


def get_settings_row(db: Session) -> PerfWatcherSettings | None:
    """Raw row, for updated_at / updated_by metadata."""
    return _get_row(db)
