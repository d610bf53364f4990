"""Report aggregation over the retention window.

Read-only and stateless: every call recomputes from the rows currently stored.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from perfwatch.models.performance import PerfSample, PerfSlowQuery
from perfwatch.schemas.perf_report import (
    OutlierRow,
    PageStat,
    PerfReport,
    RecentSampleRow,
    SlowQueryRow,
)
from perfwatch.schemas.perf_settings import PerfSettingsData

TOP_N = 15
RECENT_SAMPLES_LIMIT = 200
MIN_GROUP_SAMPLES = 3
P95_MIN_SAMPLES = 20


def _as_utc(value: datetime) -> datetime:
    # Naive values (SQLite hands them back that way) are UTC. Other offsets are
    # converted, since SQLite compares the bound without its offset.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def human_bytes(num_bytes: int | float) -> str:
    """1536 -> '1.5 KB'."""
    size = float(num_bytes)
    if size < 1024:
        return f"{int(size)} B"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:,.1f} KB"
    mb = kb / 1024
    if mb < 1024:
        return f"{mb:,.2f} MB"
    return f"{mb / 1024:,.2f} GB"


def window_start(settings: PerfSettingsData, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=settings.retention_days)


def rank_select_offset(count: int, percentile: float = 95) -> int:
    """floor(p/100 * count), clamped to [0, count - 1]."""
    offset = math.floor((percentile / 100.0) * count)
    return max(0, min(count - 1, offset))


def approx_percentile_ms(db: Session, since: datetime, count: int, max_ms: int, percentile: float = 95) -> int:
    """Order-statistic estimate; below P95_MIN_SAMPLES the window maximum is used instead."""
    if count < P95_MIN_SAMPLES:
        return max_ms

    value = db.execute(
        select(PerfSample.load_ms)
        .where(PerfSample.recorded_at >= since)
        .order_by(PerfSample.load_ms.asc(), PerfSample.id.asc())
        .offset(rank_select_offset(count, percentile))
        .limit(1)
    ).scalar()
    return int(value or 0)


def _slowest_pages(db: Session, since: datetime) -> list[PageStat]:
    samples = func.count(PerfSample.id).label("samples")
    avg_ms = func.avg(PerfSample.load_ms).label("avg_ms")
    rows = db.execute(
        select(
            PerfSample.screen_id,
            PerfSample.hook_suffix,
            samples,
            avg_ms,
            func.max(PerfSample.load_ms).label("max_ms"),
            func.avg(PerfSample.query_count).label("avg_q"),
        )
        .where(PerfSample.recorded_at >= since)
        .group_by(PerfSample.screen_id, PerfSample.hook_suffix)
        .having(func.count(PerfSample.id) >= MIN_GROUP_SAMPLES)
        .order_by(avg_ms.desc())
        .limit(TOP_N)
    ).all()
    return [
        PageStat(
            screen_id=r.screen_id or "",
            hook_suffix=r.hook_suffix or "",
            samples=int(r.samples),
            avg_ms=float(r.avg_ms or 0.0),
            max_ms=int(r.max_ms or 0),
            avg_q=float(r.avg_q or 0.0),
        )
        for r in rows
    ]


def _worst_outliers(db: Session, since: datetime) -> list[OutlierRow]:
    rows = db.execute(
        select(PerfSample)
        .where(PerfSample.recorded_at >= since)
        .order_by(PerfSample.load_ms.desc(), PerfSample.id.desc())
        .limit(TOP_N)
    ).scalars()
    return [
        OutlierRow(
            id=s.id,
            recorded_at=_as_utc(s.recorded_at),
            screen_id=s.screen_id,
            hook_suffix=s.hook_suffix,
            load_ms=s.load_ms,
            query_count=s.query_count,
            peak_memory_bytes=s.peak_memory_bytes,
            peak_memory_human=human_bytes(s.peak_memory_bytes),
        )
        for s in rows
    ]


def _slow_queries(db: Session, since: datetime, include_text: bool) -> list[SlowQueryRow]:
    rows = db.execute(
        select(
            PerfSlowQuery.recorded_at,
            PerfSlowQuery.query_ms,
            PerfSlowQuery.query_text,
            PerfSample.screen_id,
            PerfSample.hook_suffix,
        )
        .join(PerfSample, PerfSample.id == PerfSlowQuery.sample_id)
        .where(PerfSample.recorded_at >= since)
        .order_by(PerfSlowQuery.query_ms.desc(), PerfSlowQuery.id.asc())
        .limit(TOP_N)
    ).all()
    return [
        SlowQueryRow(
            recorded_at=_as_utc(r.recorded_at),
            query_ms=r.query_ms,
            screen_id=r.screen_id,
            hook_suffix=r.hook_suffix,
            query_text=r.query_text if include_text else None,
        )
        for r in rows
    ]


def _recent_samples(db: Session, since: datetime) -> list[RecentSampleRow]:
    rows = db.execute(
        select(PerfSample)
        .where(PerfSample.recorded_at >= since)
        .order_by(PerfSample.recorded_at.desc(), PerfSample.id.desc())
        .limit(RECENT_SAMPLES_LIMIT)
    ).scalars()
    return [
        RecentSampleRow(
            id=s.id,
            recorded_at=_as_utc(s.recorded_at),
            url_path=s.url_path,
            screen_id=s.screen_id,
            hook_suffix=s.hook_suffix,
            method=s.method,
            user_id=s.user_id,
            user_roles=s.role_list,
            load_ms=s.load_ms,
            query_count=s.query_count,
            peak_memory_bytes=s.peak_memory_bytes,
            plugins_hash=s.plugins_hash,
            theme_slug=s.theme_slug,
            is_ajax=bool(s.is_ajax),
            is_heartbeat=bool(s.is_heartbeat),
        )
        for s in rows
    ]


def compute_report(
    db: Session,
    settings: PerfSettingsData,
    since: datetime | None = None,
    expanded: bool = False,
) -> PerfReport:
    """
    Aggregate samples recorded at or after ``since``.

    Args:
        db: Database session
        settings: Watcher settings (retention window, slow-query toggle)
        since: Window start; defaults to now - retention_days
        expanded: Include recent_samples and slow-query text (export form)

    Returns:
        PerfReport
    """
    since = _as_utc(since) if since is not None else window_start(settings)

    totals = db.execute(
        select(
            func.count(PerfSample.id),
            func.avg(PerfSample.load_ms),
            func.max(PerfSample.load_ms),
        ).where(PerfSample.recorded_at >= since)
    ).one()
    total_samples = int(totals[0] or 0)
    avg_load = float(totals[1] or 0.0)
    max_load = int(totals[2] or 0)

    return PerfReport(
        range_days=settings.retention_days,
        since=since,
        total_samples=total_samples,
        avg_load_ms=int(math.floor(avg_load + 0.5)),
        p95_load_ms_estimate=approx_percentile_ms(db, since, total_samples, max_load),
        slowest_pages=_slowest_pages(db, since),
        worst_outliers=_worst_outliers(db, since),
        slow_queries=_slow_queries(db, since, include_text=expanded)
        if settings.log_slow_queries_if_available
        else [],
        recent_samples=_recent_samples(db, since) if expanded else [],
    )
