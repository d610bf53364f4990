"""Database models."""

# Import all models here so metadata.create_all sees every table
from perfwatch.models.jobs import JobRun
from perfwatch.models.perf_settings import PerfWatcherSettings
from perfwatch.models.performance import PerfSample, PerfSlowQuery

__all__ = [
    "JobRun",
    "PerfSample",
    "PerfSlowQuery",
    "PerfWatcherSettings",
]
