"""SQLAlchemy instrumentation for per-request query counters and timings.

This module attaches SQLAlchemy event listeners to the Engine:
- Count every query executed while a request is being handled.
- Keep an ordered (statement, seconds) log when the query log is switched on.
- Log slow SQL with request_id correlation.

Fail-open: instrumentation must never break application queries.
"""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine

from perfwatch.core.config import settings
from perfwatch.core.logging import get_logger
from perfwatch.middleware.request_context import get_query_stats, get_request_id

logger = get_logger(__name__)

SLOW_SQL_WARN_MS = 100
SLOW_SQL_ERROR_MS = 300
MAX_SQL_CHARS = 2000


def normalize_sql(sql: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return " ".join((sql or "").split())


def _severity_for_query_ms(query_ms: float) -> str | None:
    if query_ms > SLOW_SQL_ERROR_MS:
        return "error"
    if query_ms > SLOW_SQL_WARN_MS:
        return "warn"
    return None


def instrument_engine(engine: Engine) -> None:
    """Attach SQLAlchemy listeners to a sync Engine (idempotent)."""

    if getattr(engine, "_perf_instrumented", False):
        return
    setattr(engine, "_perf_instrumented", True)

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(
        conn, cursor, statement: str, parameters: Any, context, executemany: bool
    ) -> None:
        try:
            conn.info["_perf_query_start"] = time.perf_counter()
        except Exception:
            pass

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(
        conn, cursor, statement: str, parameters: Any, context, executemany: bool
    ) -> None:
        start = conn.info.pop("_perf_query_start", None)
        if start is None:
            return

        try:
            seconds = time.perf_counter() - float(start)
        except Exception:
            return

        stats = get_query_stats()
        if stats is not None:
            try:
                stats.record(statement, seconds)
            except Exception:
                pass

        query_ms = seconds * 1000.0
        sev = _severity_for_query_ms(query_ms)
        if not sev:
            return

        try:
            logger.warning(
                "slow_sql",
                extra={
                    "severity": sev,
                    "request_id": get_request_id() or "unknown",
                    "query_ms": int(query_ms),
                    "sql": normalize_sql(statement)[:MAX_SQL_CHARS],
                    "env": settings.ENV,
                },
            )
        except Exception:
            # Never break requests due to logging
            return
