"""Job execution models."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, Uuid

from perfwatch.db.base import Base


class JobRun(Base):
    """Job execution tracking."""

    __tablename__ = "job_run"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_key = Column(String(100), nullable=False)  # e.g. "retention_sweep"
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="QUEUED")  # QUEUED, RUNNING, SUCCEEDED, FAILED
    stats_json = Column(JSON, nullable=False, default=dict)
    error_text = Column(Text(), nullable=True)

    __table_args__ = (
        Index("ix_job_run_job_key", "job_key"),
        Index("ix_job_run_status", "status"),
    )
