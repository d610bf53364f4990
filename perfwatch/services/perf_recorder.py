"""Per-request sampling: admission early in the request, persistence at the end.

Admission draws once per eligible request and, when admitted, freezes a snapshot
of the request context. Completion measures elapsed time, query count and memory,
then writes one sample row plus any slow-query rows. Completion is best-effort:
a failed write drops the sample and is only logged.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from perfwatch.core.security import Actor
from perfwatch.db.instrumentation import normalize_sql
from perfwatch.middleware.request_context import capture_var
from perfwatch.models.performance import PerfSample, PerfSlowQuery
from perfwatch.observability.logging import get_logger
from perfwatch.schemas.perf_settings import PerfSettingsData
from perfwatch.services.host_environment import HostEnvironment

logger = get_logger(__name__)

MAX_QUERY_TEXT_CHARS = 2000
TRIMMED_MARKER = " [trimmed]"

_system_random = random.SystemRandom()


def _default_roll() -> int:
    return _system_random.randint(1, 100)


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


@dataclass(frozen=True)
class RequestFacts:
    """What the host tells us about a request before it runs."""

    path: str
    method: str = "GET"
    actor: Actor = field(default_factory=Actor)
    is_monitored: bool = True
    is_ajax: bool = False
    is_heartbeat: bool = False


@dataclass(frozen=True)
class RequestSnapshot:
    """Context captured once at admission; never changes afterwards."""

    recorded_at: datetime
    url_path: str
    method: str
    user_id: int
    user_roles: tuple[str, ...]
    plugins_hash: str
    theme_slug: str
    is_ajax: bool
    is_heartbeat: bool


@dataclass
class CaptureContext:
    """In-flight capture for one admitted request."""

    snapshot: RequestSnapshot
    started: float
    settings: PerfSettingsData
    screen_id: str = ""
    _screen_resolved: bool = field(default=False, repr=False)

    def resolve_screen(self, screen_id: str | None) -> bool:
        """Set the screen id the first time the host reveals it; later calls are ignored."""
        if self._screen_resolved:
            return False
        self.screen_id = str(screen_id or "")
        self._screen_resolved = True
        return True


def strip_query_string(uri: str) -> str:
    return (uri or "").split("?", 1)[0]


def should_admit(
    settings: PerfSettingsData,
    facts: RequestFacts,
    roll: Callable[[], int] = _default_roll,
) -> bool:
    """Admission rule: enabled, monitored, not excluded, and a 1..100 draw <= sample rate."""
    if not settings.enabled or not facts.is_monitored:
        return False
    if settings.ignore_ajax and facts.is_ajax:
        return False
    if settings.ignore_heartbeat and facts.is_heartbeat:
        return False
    return roll() <= settings.sample_rate_percent


def begin_capture(
    settings: PerfSettingsData,
    facts: RequestFacts,
    host: HostEnvironment,
    roll: Callable[[], int] = _default_roll,
    clock: Callable[[], float] = time.perf_counter,
) -> CaptureContext | None:
    """Admission step. Returns the capture context, or None when the request is skipped."""
    if not should_admit(settings, facts, roll):
        return None

    started = clock()
    snapshot = RequestSnapshot(
        recorded_at=datetime.now(timezone.utc),
        url_path=strip_query_string(facts.path),
        method=(facts.method or "GET").upper()[:10],
        user_id=facts.actor.user_id,
        user_roles=facts.actor.roles if facts.actor.user_id else (),
        plugins_hash=host.plugins_hash,
        theme_slug=host.theme_slug,
        is_ajax=facts.is_ajax,
        is_heartbeat=facts.is_heartbeat,
    )
    logger.debug("perf.capture.admitted", path=snapshot.url_path, method=snapshot.method)
    return CaptureContext(snapshot=snapshot, started=started, settings=settings)


def resolve_screen(screen_id: str) -> bool:
    """Screen notification for the current request; no-op when it was not admitted."""
    ctx = capture_var.get()
    if ctx is None:
        return False
    return ctx.resolve_screen(screen_id)


def trim_query_text(sql: str) -> str:
    """Collapse whitespace, trim, and cap at MAX_QUERY_TEXT_CHARS with a marker."""
    text = normalize_sql(sql)
    if len(text) > MAX_QUERY_TEXT_CHARS:
        text = text[:MAX_QUERY_TEXT_CHARS] + TRIMMED_MARKER
    return text


def insert_sample(
    db: Session,
    ctx: CaptureContext,
    elapsed_ms: int,
    query_count: int,
    peak_memory_bytes: int,
    hook_suffix: str = "",
) -> int:
    snap = ctx.snapshot
    row = PerfSample(
        recorded_at=snap.recorded_at,
        url_path=snap.url_path,
        screen_id=ctx.screen_id[:191],
        hook_suffix=(hook_suffix or "")[:191],
        method=snap.method,
        user_id=snap.user_id,
        user_roles=",".join(snap.user_roles)[:255],
        load_ms=max(0, int(elapsed_ms)),
        query_count=max(0, int(query_count)),
        peak_memory_bytes=max(0, int(peak_memory_bytes)),
        plugins_hash=snap.plugins_hash,
        theme_slug=snap.theme_slug[:191],
        is_ajax=snap.is_ajax,
        is_heartbeat=snap.is_heartbeat,
    )
    db.add(row)
    db.commit()
    return int(row.id)


def insert_slow_queries(
    db: Session,
    sample_id: int,
    queries: Iterable[Sequence[Any]],
    threshold_ms: int,
) -> int:
    """One pass over the host's (statement, seconds) log; returns rows written."""
    written = 0
    for entry in queries:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        try:
            query_ms = _round_half_up(float(entry[1]) * 1000.0)
        except (TypeError, ValueError):
            continue
        if query_ms < threshold_ms:
            continue
        db.add(
            PerfSlowQuery(
                sample_id=sample_id,
                recorded_at=datetime.now(timezone.utc),
                query_ms=query_ms,
                query_text=trim_query_text(str(entry[0])),
            )
        )
        written += 1
    if written:
        db.commit()
    return written


def finish_capture(
    ctx: CaptureContext | None,
    session_factory: Callable[[], Session],
    host: HostEnvironment,
    query_count: int = 0,
    query_log: Sequence[Sequence[Any]] | None = None,
    hook_suffix: str = "",
    clock: Callable[[], float] = time.perf_counter,
) -> int | None:
    """Completion step. Returns the new sample id, or None if nothing was written."""
    if ctx is None:
        return None

    elapsed_ms = max(0, _round_half_up((clock() - ctx.started) * 1000.0))
    try:
        peak_memory = host.peak_memory_bytes()
    except Exception:
        peak_memory = 0

    db = session_factory()
    try:
        try:
            sample_id = insert_sample(
                db, ctx, elapsed_ms, query_count, peak_memory, hook_suffix=hook_suffix
            )
        except Exception as e:
            db.rollback()
            logger.warning("perf.capture.persist_failed", error=str(e), path=ctx.snapshot.url_path)
            return None

        settings = ctx.settings
        if settings.log_slow_queries_if_available and host.query_log_enabled and query_log:
            try:
                insert_slow_queries(db, sample_id, query_log, settings.slow_query_ms_threshold)
            except Exception as e:
                db.rollback()
                logger.warning("perf.slow_query.persist_failed", error=str(e), sample_id=sample_id)
        return sample_id
    finally:
        db.close()
