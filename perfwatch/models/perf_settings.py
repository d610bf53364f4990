"""Watcher settings model."""

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, func

from perfwatch.db.base import Base


class PerfWatcherSettings(Base):
    """Watcher settings stored as JSON (singleton row, id=1)."""

    __tablename__ = "perf_watcher_settings"

    id = Column(Integer, primary_key=True, default=1, server_default="1")  # Singleton
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    updated_by_user_id = Column(BigInteger, nullable=True)
