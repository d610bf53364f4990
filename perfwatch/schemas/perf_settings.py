"""Schemas for watcher settings.

Every field has a typed default and its own validator. Input is coerced and
clamped, never rejected: an out-of-range or unparseable value is normalised.
"""

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

RETENTION_DAYS_RANGE = (1, 90)
SAMPLE_RATE_RANGE = (1, 100)
SLOW_QUERY_MS_RANGE = (10, 5000)

_FALSY_STRINGS = {"", "0", "false", "off", "no"}


def coerce_bool(value: Any, default: bool) -> bool:
    """Checkbox-style truthiness: empty values and "0"/"false"/"off"/"no" are False."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_STRINGS
    return bool(value)


def coerce_int(value: Any, default: int) -> int:
    """Best-effort integer cast; unparseable input falls back to the default."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    try:
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            return coerce_int(float(text), default)
    except (TypeError, ValueError):
        return default


def clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


class PerfSettingsData(BaseModel):
    """Watcher settings."""

    model_config = ConfigDict(extra="ignore", validate_default=True)

    enabled: bool = True
    retention_days: int = Field(default=14, ge=1, le=90)
    sample_rate_percent: int = Field(default=25, ge=1, le=100)
    slow_query_ms_threshold: int = Field(default=250, ge=10, le=5000)
    log_slow_queries_if_available: bool = True
    ignore_ajax: bool = True
    ignore_heartbeat: bool = True

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled(cls, v: Any) -> bool:
        return coerce_bool(v, True)

    @field_validator("retention_days", mode="before")
    @classmethod
    def _retention_days(cls, v: Any) -> int:
        return clamp(coerce_int(v, 14), RETENTION_DAYS_RANGE)

    @field_validator("sample_rate_percent", mode="before")
    @classmethod
    def _sample_rate_percent(cls, v: Any) -> int:
        return clamp(coerce_int(v, 25), SAMPLE_RATE_RANGE)

    @field_validator("slow_query_ms_threshold", mode="before")
    @classmethod
    def _slow_query_ms_threshold(cls, v: Any) -> int:
        return clamp(coerce_int(v, 250), SLOW_QUERY_MS_RANGE)

    @field_validator("log_slow_queries_if_available", mode="before")
    @classmethod
    def _log_slow_queries(cls, v: Any) -> bool:
        return coerce_bool(v, True)

    @field_validator("ignore_ajax", mode="before")
    @classmethod
    def _ignore_ajax(cls, v: Any) -> bool:
        return coerce_bool(v, True)

    @field_validator("ignore_heartbeat", mode="before")
    @classmethod
    def _ignore_heartbeat(cls, v: Any) -> bool:
        return coerce_bool(v, True)


class PerfSettingsResponse(BaseModel):
    """Response schema for watcher settings."""

    data: PerfSettingsData
    updated_at: datetime | None = None
    updated_by_user_id: int | None = None


class PerfSettingsUpdate(BaseModel):
    """Update payload: a loose mapping under ``data``, normalised by the settings store.

    The wrapper itself is strict, so a bare settings object is rejected instead of
    being read as an empty update that resets every field.
    """

    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any]
