"""Schemas for the performance report and the JSON export document."""

from datetime import datetime

from pydantic import BaseModel, Field

from perfwatch.schemas.perf_settings import PerfSettingsData


class PageStat(BaseModel):
    """One (screen_id, hook_suffix) group."""

    screen_id: str
    hook_suffix: str
    samples: int
    avg_ms: float
    max_ms: int
    avg_q: float


class OutlierRow(BaseModel):
    id: int
    recorded_at: datetime
    screen_id: str
    hook_suffix: str
    load_ms: int
    query_count: int
    peak_memory_bytes: int
    peak_memory_human: str


class SlowQueryRow(BaseModel):
    recorded_at: datetime
    query_ms: int
    screen_id: str
    hook_suffix: str
    query_text: str | None = None  # export only


class RecentSampleRow(BaseModel):
    id: int
    recorded_at: datetime
    url_path: str
    screen_id: str
    hook_suffix: str
    method: str
    user_id: int
    user_roles: list[str]
    load_ms: int
    query_count: int
    peak_memory_bytes: int
    plugins_hash: str
    theme_slug: str
    is_ajax: bool
    is_heartbeat: bool


class PerfReport(BaseModel):
    """Aggregates over [since, now]."""

    range_days: int
    since: datetime
    total_samples: int
    avg_load_ms: int
    p95_load_ms_estimate: int
    slowest_pages: list[PageStat] = Field(default_factory=list)
    worst_outliers: list[OutlierRow] = Field(default_factory=list)
    slow_queries: list[SlowQueryRow] = Field(default_factory=list)
    recent_samples: list[RecentSampleRow] = Field(default_factory=list)


class PerfReportResponse(BaseModel):
    """Report plus the capability note shown next to it."""

    stats: PerfReport
    slow_query_capture_available: bool


class ExportDocument(BaseModel):
    """Portable snapshot: settings plus the expanded report."""

    generated_at: datetime
    site_url: str
    settings: PerfSettingsData
    stats: PerfReport
