"""Admin performance sampling models."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from perfwatch.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class PerfSample(Base):
    """One measured admin request. Written once, never updated."""

    __tablename__ = "perf_sample"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    url_path = Column(Text(), nullable=False, default="")
    screen_id = Column(String(191), nullable=False, default="", server_default="")
    hook_suffix = Column(String(191), nullable=False, default="", server_default="")
    method = Column(String(10), nullable=False, default="GET", server_default="GET")

    user_id = Column(BigInteger, nullable=False, default=0, server_default="0")
    user_roles = Column(String(255), nullable=False, default="", server_default="")  # comma-joined, ordered

    load_ms = Column(Integer, nullable=False, default=0, server_default="0")
    query_count = Column(Integer, nullable=False, default=0, server_default="0")
    peak_memory_bytes = Column(BigInteger, nullable=False, default=0, server_default="0")

    plugins_hash = Column(String(64), nullable=False, default="", server_default="")
    theme_slug = Column(String(191), nullable=False, default="", server_default="")
    is_ajax = Column(Boolean, nullable=False, default=False, server_default="0")
    is_heartbeat = Column(Boolean, nullable=False, default=False, server_default="0")

    slow_queries = relationship(
        "PerfSlowQuery",
        back_populates="sample",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_perf_sample_recorded_at", "recorded_at"),
        Index("ix_perf_sample_screen_id", "screen_id"),
        Index("ix_perf_sample_hook_suffix", "hook_suffix"),
        Index("ix_perf_sample_plugins_hash", "plugins_hash"),
        Index("ix_perf_sample_load_ms", "load_ms"),
    )

    @property
    def role_list(self) -> list[str]:
        return [role for role in (self.user_roles or "").split(",") if role]


class PerfSlowQuery(Base):
    """A query over the slow threshold, owned by its sample."""

    __tablename__ = "perf_slow_query"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sample_id = Column(
        BigInteger,
        ForeignKey("perf_sample.id", ondelete="CASCADE"),
        nullable=False,
    )
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    query_ms = Column(Integer, nullable=False, default=0, server_default="0")
    query_text = Column(Text(), nullable=False)

    sample = relationship("PerfSample", back_populates="slow_queries")

    __table_args__ = (
        Index("ix_perf_slow_query_sample_id", "sample_id"),
        Index("ix_perf_slow_query_recorded_at", "recorded_at"),
    )
