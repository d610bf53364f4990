"""CLI entry point for job execution."""

import logging
import sys
from datetime import datetime, timezone

import click

from perfwatch.core.logging import setup_logging
from perfwatch.db.session import SessionLocal
from perfwatch.jobs.retention_sweep import JOB_KEY as RETENTION_SWEEP, run_retention_sweep

logger = logging.getLogger(__name__)


@click.command()
@click.argument("job_key")
def run(job_key: str):
    """
    Run a scheduled job.

    Example (daily, from cron or any scheduler):
        python -m perfwatch.jobs.run retention_sweep
    """
    setup_logging()

    db = SessionLocal()
    try:
        if job_key == RETENTION_SWEEP:
            result = run_retention_sweep(db, scheduled_for=datetime.now(timezone.utc))
            click.echo(f"Job completed: {result}")
        else:
            click.echo(f"Unknown job key: {job_key}", err=True)
            sys.exit(1)
    except Exception as e:
        logger.error(f"Job failed: {e}", exc_info=True)
        click.echo(f"Job failed: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    run()
