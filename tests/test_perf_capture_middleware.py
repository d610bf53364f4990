"""End-to-end tests for the capture middleware on a small FastAPI app."""

import anyio
import httpx
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from perfwatch.core.dependencies import screen
from perfwatch.db.session import SessionLocal, get_db
from perfwatch.middleware.perf_capture import PerfCaptureMiddleware, request_facts_from_scope
from perfwatch.models.performance import PerfSample
from perfwatch.services.host_environment import HostEnvironment
from perfwatch.services.perf_settings import save_settings


def _build_app() -> FastAPI:
    app = FastAPI()
    host = HostEnvironment(
        active_plugins=["seo/seo.php"],
        theme="storefront",
        query_log_enabled=False,
        memory_reader=lambda: 64 * 1024 * 1024,
    )
    app.add_middleware(PerfCaptureMiddleware, host=host, roll=lambda: 1)

    @app.get("/v1/admin/posts/{post_id}", dependencies=[screen("edit-post")])
    def edit_post(post_id: int, db: Session = Depends(get_db)):
        db.execute(text("SELECT 1"))
        db.execute(text("SELECT 2"))
        return {"id": post_id}

    @app.get("/v1/admin/ajax")
    def ajax():
        return {"ok": True}

    @app.get("/v1/admin/broken")
    def broken():
        raise RuntimeError("boom")

    @app.get("/public")
    def public():
        return {"ok": True}

    return app


@pytest.fixture
def app_client() -> TestClient:
    return TestClient(_build_app(), raise_server_exceptions=False)


def _samples(db) -> list[PerfSample]:
    db.expire_all()
    return list(db.execute(select(PerfSample).order_by(PerfSample.id)).scalars())


def test_admitted_request_is_recorded(db, app_client, admin_headers):
    response = app_client.get("/v1/admin/posts/7?preview=true", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["x-request-id"]
    [sample] = _samples(db)
    assert sample.url_path == "/v1/admin/posts/7"
    assert sample.screen_id == "edit-post"
    assert sample.hook_suffix == "/v1/admin/posts/{post_id}"
    assert sample.method == "GET"
    assert sample.user_id == 1
    assert sample.role_list == ["administrator"]
    assert sample.query_count >= 2
    assert sample.peak_memory_bytes == 64 * 1024 * 1024
    assert sample.theme_slug == "storefront"
    assert sample.load_ms >= 0


def test_anonymous_request_records_no_roles(db, app_client):
    app_client.get("/v1/admin/posts/1")

    [sample] = _samples(db)
    assert sample.user_id == 0
    assert sample.user_roles == ""


def test_failing_request_is_still_recorded(db, app_client):
    response = app_client.get("/v1/admin/broken")

    assert response.status_code == 500
    [sample] = _samples(db)
    assert sample.url_path == "/v1/admin/broken"
    assert sample.screen_id == ""


def test_requests_outside_admin_surface_are_ignored(db, app_client):
    assert app_client.get("/public").status_code == 200
    assert _samples(db) == []


def test_ajax_and_heartbeat_are_ignored_by_default(db, app_client):
    app_client.get("/v1/admin/ajax", params={"action": "heartbeat"})
    app_client.get("/v1/admin/posts/3", headers={"X-Requested-With": "XMLHttpRequest"})

    assert _samples(db) == []


def test_ajax_recorded_when_allowed_but_heartbeat_still_ignored(db, app_client):
    save_settings(db, {"ignore_ajax": False, "ignore_heartbeat": True})

    app_client.get("/v1/admin/ajax", params={"action": "heartbeat"})
    app_client.get("/v1/admin/ajax", params={"action": "save-draft"})

    [sample] = _samples(db)
    assert sample.is_ajax is True
    assert sample.is_heartbeat is False


def test_disabled_watcher_records_nothing(db, app_client):
    save_settings(db, {"enabled": False})

    app_client.get("/v1/admin/posts/9")

    assert _samples(db) == []


def test_request_facts_classification():
    scope = {
        "type": "http",
        "path": "/v1/admin/ajax",
        "method": "POST",
        "query_string": b"action=heartbeat",
        "headers": [],
    }

    facts = request_facts_from_scope(scope)

    assert facts.is_monitored
    assert facts.is_ajax
    assert facts.is_heartbeat
    assert facts.method == "POST"
    assert not facts.actor.is_authenticated


# ---------------------------------------------------------------------------
# Concurrency and ordering
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _run_queries(count: int) -> None:
    with SessionLocal() as session:
        for _ in range(count):
            session.execute(text("SELECT 1"))


@pytest.mark.anyio
async def test_overlapping_requests_keep_their_own_capture(db):
    first_started = anyio.Event()
    release_first = anyio.Event()

    app = FastAPI()
    app.add_middleware(
        PerfCaptureMiddleware,
        host=HostEnvironment(query_log_enabled=False, memory_reader=lambda: 1),
        roll=lambda: 1,
    )

    @app.get("/v1/admin/first", dependencies=[screen("first-screen")])
    async def first():
        _run_queries(1)
        first_started.set()
        await release_first.wait()
        return {"ok": True}

    @app.get("/v1/admin/second", dependencies=[screen("second-screen")])
    async def second():
        await first_started.wait()
        _run_queries(3)
        release_first.set()
        return {"ok": True}

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(http.get, "/v1/admin/first")
                tg.start_soon(http.get, "/v1/admin/second")

    by_path = {s.url_path: s for s in _samples(db)}
    assert set(by_path) == {"/v1/admin/first", "/v1/admin/second"}
    assert by_path["/v1/admin/first"].screen_id == "first-screen"
    assert by_path["/v1/admin/first"].query_count == 1
    assert by_path["/v1/admin/second"].screen_id == "second-screen"
    assert by_path["/v1/admin/second"].query_count == 3


@pytest.mark.anyio
async def test_sample_is_written_after_response_is_sent(db):
    events: list[str] = []

    def session_factory():
        events.append("session")
        return SessionLocal()

    async def endpoint(scope, receive, send):
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})

    async def receive():
        return {"type": "http.request", "body": b""}

    async def send(message):
        events.append(message["type"])

    middleware = PerfCaptureMiddleware(
        endpoint,
        session_factory=session_factory,
        host=HostEnvironment(query_log_enabled=False, memory_reader=lambda: 1),
        roll=lambda: 1,
    )
    scope = {
        "type": "http",
        "path": "/v1/admin/dashboard",
        "method": "GET",
        "query_string": b"",
        "headers": [],
    }

    await middleware(scope, receive, send)

    # admission settings read, response, then the completion write
    assert events == ["session", "http.response.start", "http.response.body", "session"]
    assert [s.url_path for s in _samples(db)] == ["/v1/admin/dashboard"]
