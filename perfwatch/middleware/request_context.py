"""Request-scoped context for performance instrumentation.

We use contextvars so every request carries its own capture state:
- the SQLAlchemy listeners can count queries for the request being measured
- the capture middleware can hand the in-flight sample from admission to completion

Values stored here are set once per request by the middleware and mutated in place,
so sync endpoints running in a worker thread (with a copied context) still update
the same objects.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perfwatch.services.perf_recorder import CaptureContext

# ============================================================================
# Context variables (request-scoped)
# ============================================================================

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
query_stats_var: contextvars.ContextVar[QueryStats | None] = contextvars.ContextVar(
    "query_stats", default=None
)
capture_var: contextvars.ContextVar[CaptureContext | None] = contextvars.ContextVar(
    "perf_capture", default=None
)


@dataclass
class QueryStats:
    """Per-request query counter plus the optional per-query timing log."""

    log_enabled: bool = False
    count: int = 0
    log: list[tuple[str, float]] = field(default_factory=list)  # (statement, seconds)

    def record(self, statement: str, seconds: float) -> None:
        self.count += 1
        if self.log_enabled:
            self.log.append((statement, seconds))


def get_request_id() -> str | None:
    """Get current request id (if in a request context)."""

    return request_id_var.get()


def get_query_stats() -> QueryStats | None:
    """Query stats for the current request, or None outside a request."""

    return query_stats_var.get()
