"""Daily retention sweep job."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from perfwatch.jobs.registry import create_job_run, update_job_run_status
from perfwatch.services.perf_settings import load_settings
from perfwatch.services.perf_sweeper import sweep_expired_samples

logger = logging.getLogger(__name__)

JOB_KEY = "retention_sweep"


def run_retention_sweep(db: Session, scheduled_for: datetime | None = None) -> dict:
    """
    Run one sweep batch and record it in job_run.

    Returns:
        Sweep counts (samples_deleted, slow_queries_deleted)
    """
    job_run = create_job_run(db, JOB_KEY, scheduled_for=scheduled_for)
    update_job_run_status(db, job_run.id, "RUNNING")

    try:
        stats = sweep_expired_samples(db, load_settings(db))
    except Exception as e:
        db.rollback()
        update_job_run_status(db, job_run.id, "FAILED", error=str(e))
        raise

    update_job_run_status(db, job_run.id, "SUCCEEDED", stats=stats)
    logger.info(f"Retention sweep completed: {stats}")
    return stats
