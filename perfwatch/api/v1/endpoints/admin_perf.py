"""Admin performance endpoints: report and JSON export."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from perfwatch.core.app_exceptions import ReportUnavailableError
from perfwatch.core.dependencies import require_admin, screen
from perfwatch.core.logging import get_logger
from perfwatch.core.security import Actor
from perfwatch.db.session import get_db
from perfwatch.observability.logging import audit_log
from perfwatch.schemas.perf_report import PerfReportResponse
from perfwatch.services.host_environment import HostEnvironment
from perfwatch.services.perf_export import EXPORT_FILENAME, build_export, render_export
from perfwatch.services.perf_report import compute_report
from perfwatch.services.perf_settings import load_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/perf", tags=["Admin - Performance"])


@router.get(
    "/report",
    response_model=PerfReportResponse,
    summary="Performance report",
    description="Slowest screens, outliers, p95 estimate and slow queries over the retention window.",
    dependencies=[screen("tools_page_admin-performance-watcher")],
)
def perf_report(
    since: datetime | None = Query(None, description="Window start (ISO-8601); defaults to the retention window"),
    expanded: bool = Query(False, description="Include the 200 most recent samples"),
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(require_admin),
) -> PerfReportResponse:
    try:
        watcher_settings = load_settings(db)
        stats = compute_report(db, watcher_settings, since=since, expanded=expanded)
    except SQLAlchemyError as e:
        logger.error(f"Performance report failed: {e}")
        raise ReportUnavailableError() from e

    host = HostEnvironment()
    return PerfReportResponse(
        stats=stats,
        slow_query_capture_available=watcher_settings.log_slow_queries_if_available
        and host.query_log_enabled,
    )


@router.get(
    "/export",
    summary="Export as JSON",
    description="Download current settings plus the expanded report as a pretty-printed JSON file.",
    responses={200: {"content": {"application/json": {}}}},
)
def perf_export(
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(require_admin),
) -> Response:
    try:
        document = build_export(db, load_settings(db))
    except SQLAlchemyError as e:
        logger.error(f"Performance export failed: {e}")
        raise ReportUnavailableError() from e

    audit_log(
        "perf.export.downloaded",
        actor_id=str(current_actor.user_id),
        action="export",
        total_samples=document.stats.total_samples,
    )
    return Response(
        content=render_export(document),
        media_type="application/json; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"',
            "Cache-Control": "no-cache, must-revalidate, max-age=0",
            "Pragma": "no-cache",
        },
    )
