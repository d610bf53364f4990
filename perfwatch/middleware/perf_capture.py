"""Admin performance capture middleware (ASGI; runs completion on errors, too).

Admission happens before the route runs, completion in a ``finally`` after the
response. All capture state lives in request-scoped contextvars, so concurrent
requests never share it.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

import anyio
import structlog
from sqlalchemy.orm import Session
from starlette.datastructures import Headers, QueryParams

from perfwatch.core.config import settings
from perfwatch.core.security import actor_from_authorization
from perfwatch.db.session import SessionLocal
from perfwatch.middleware.request_context import (
    QueryStats,
    capture_var,
    query_stats_var,
    request_id_var,
)
from perfwatch.observability.logging import get_logger
from perfwatch.schemas.perf_settings import PerfSettingsData
from perfwatch.services.host_environment import HostEnvironment
from perfwatch.services.perf_recorder import (
    CaptureContext,
    RequestFacts,
    begin_capture,
    finish_capture,
)
from perfwatch.services.perf_settings import load_settings

logger = get_logger(__name__)


def request_facts_from_scope(scope: dict[str, Any]) -> RequestFacts:
    """Classify an ASGI request: monitored surface, AJAX, heartbeat, actor."""
    path = str(scope.get("path") or "")
    headers = Headers(scope=scope)
    query = QueryParams(scope.get("query_string") or b"")

    is_monitored = path.startswith(settings.PERF_ADMIN_PATH_PREFIX)
    is_ajax = path.startswith(settings.PERF_AJAX_PATH) or (
        headers.get("x-requested-with", "").lower() == "xmlhttprequest"
    )
    is_heartbeat = is_ajax and query.get("action") == settings.PERF_HEARTBEAT_ACTION

    return RequestFacts(
        path=path,
        method=str(scope.get("method") or "GET"),
        actor=actor_from_authorization(headers.get("authorization")),
        is_monitored=is_monitored,
        is_ajax=is_ajax,
        is_heartbeat=is_heartbeat,
    )


def _route_template(scope: dict[str, Any]) -> str:
    route = scope.get("route")
    return str(getattr(route, "path", "") or "")


class PerfCaptureMiddleware:
    """ASGI middleware exposing the begin/end capture hooks."""

    def __init__(
        self,
        app,
        session_factory: Callable[[], Session] | None = None,
        host: HostEnvironment | None = None,
        roll: Callable[[], int] | None = None,
    ):
        self.app = app
        self.session_factory = session_factory or SessionLocal
        self.host = host or HostEnvironment()
        self.roll = roll

    def _load_settings(self) -> PerfSettingsData:
        db = self.session_factory()
        try:
            return load_settings(db)
        finally:
            db.close()

    async def _admit(self, facts: RequestFacts) -> CaptureContext | None:
        kwargs = {"roll": self.roll} if self.roll is not None else {}
        try:
            watcher_settings = await anyio.to_thread.run_sync(self._load_settings)
            return begin_capture(watcher_settings, facts, self.host, **kwargs)
        except Exception as e:
            logger.warning("perf.capture.admission_failed", error=str(e))
            return None

    async def __call__(self, scope: dict[str, Any], receive, send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get("x-request-id") or str(uuid.uuid4())
        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id

        token_request_id = request_id_var.set(request_id)
        structlog.contextvars.bind_contextvars(request_id=request_id)

        facts = request_facts_from_scope(scope)
        ctx = await self._admit(facts) if facts.is_monitored else None

        stats = QueryStats(log_enabled=ctx is not None and self.host.query_log_enabled)
        token_stats = query_stats_var.set(stats)
        token_capture = capture_var.set(ctx)

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                raw_headers = list(message.get("headers") or [])
                raw_headers.append((b"x-request-id", request_id.encode("utf-8")))
                message["headers"] = raw_headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            if ctx is not None:
                query_count = stats.count
                query_log = list(stats.log)
                # Awaited rather than spawned as a task: a detached write is lost when the
                # loop shuts down. The response body has already gone out on success; only
                # an unhandled error's 500 waits for this insert.
                try:
                    await anyio.to_thread.run_sync(
                        lambda: finish_capture(
                            ctx,
                            self.session_factory,
                            self.host,
                            query_count=query_count,
                            query_log=query_log,
                            hook_suffix=_route_template(scope),
                        )
                    )
                except Exception as e:
                    # Measurement must never affect the request being measured
                    logger.warning("perf.capture.persist_failed", error=str(e))

            capture_var.reset(token_capture)
            query_stats_var.reset(token_stats)
            request_id_var.reset(token_request_id)
            structlog.contextvars.clear_contextvars()
