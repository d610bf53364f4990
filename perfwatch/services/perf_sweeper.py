"""Retention sweep: drop samples (and their slow queries) older than the window."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from perfwatch.models.performance import PerfSample, PerfSlowQuery
from perfwatch.schemas.perf_settings import PerfSettingsData

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 5000


def retention_cutoff(settings: PerfSettingsData, now: datetime | None = None) -> datetime:
    """Samples with recorded_at >= cutoff are inside the window and kept."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=settings.retention_days)


def sweep_expired_samples(
    db: Session,
    settings: PerfSettingsData,
    now: datetime | None = None,
    batch_size: int = SWEEP_BATCH_SIZE,
) -> dict[str, int]:
    """
    Delete one bounded batch of expired samples.

    Slow-query children are deleted before their samples. Anything beyond the
    batch is left for the next scheduled run.

    Args:
        db: Database session
        settings: Watcher settings (retention_days)
        now: Reference time, defaults to current UTC time
        batch_size: Maximum samples removed per call

    Returns:
        Dictionary with counts (samples_deleted, slow_queries_deleted)
    """
    cutoff = retention_cutoff(settings, now)

    sample_ids = list(
        db.execute(
            select(PerfSample.id)
            .where(PerfSample.recorded_at < cutoff)
            .order_by(PerfSample.id)
            .limit(batch_size)
        ).scalars()
    )
    if not sample_ids:
        return {"samples_deleted": 0, "slow_queries_deleted": 0}

    try:
        slow_deleted = db.execute(
            delete(PerfSlowQuery).where(PerfSlowQuery.sample_id.in_(sample_ids))
        ).rowcount
        samples_deleted = db.execute(
            delete(PerfSample).where(PerfSample.id.in_(sample_ids))
        ).rowcount
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Swept {samples_deleted} samples and {slow_deleted} slow queries older than {cutoff.isoformat()}"
    )
    return {"samples_deleted": int(samples_deleted or 0), "slow_queries_deleted": int(slow_deleted or 0)}
