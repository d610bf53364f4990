"""JSON export of settings plus the expanded report."""

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from perfwatch.core.config import settings as app_settings
from perfwatch.schemas.perf_report import ExportDocument
from perfwatch.schemas.perf_settings import PerfSettingsData
from perfwatch.services.perf_report import compute_report

EXPORT_FILENAME = "admin-performance-watcher.json"


def build_export(db: Session, settings: PerfSettingsData) -> ExportDocument:
    """Assemble the export document; recent_samples are always included."""
    return ExportDocument(
        generated_at=datetime.now(timezone.utc).replace(microsecond=0),
        site_url=app_settings.SITE_URL,
        settings=settings,
        stats=compute_report(db, settings, expanded=True),
    )


def render_export(document: ExportDocument) -> str:
    """Pretty-printed JSON."""
    return document.model_dump_json(indent=4)
