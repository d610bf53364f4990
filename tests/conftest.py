"""Pytest configuration and shared fixtures."""

import os
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# Point the app at a throwaway SQLite database before anything imports perfwatch
_TEST_DB_DIR = tempfile.mkdtemp(prefix="perfwatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB_DIR}/perfwatch.db"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["PERF_QUERY_LOG_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

import perfwatch.models  # noqa: E402,F401
from perfwatch.core.config import settings  # noqa: E402
from perfwatch.db.base import Base  # noqa: E402
from perfwatch.db.engine import engine  # noqa: E402
from perfwatch.db.instrumentation import instrument_engine  # noqa: E402
from perfwatch.db.session import SessionLocal  # noqa: E402
from perfwatch.models import JobRun, PerfSample, PerfSlowQuery, PerfWatcherSettings  # noqa: E402


def create_access_token(user_id: int, roles: list[str], expires_minutes: int = 15) -> str:
    """Mint a token the way the host application does."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "roles": list(roles),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "jti": str(uuid4()),
        "type": "access",
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    """Create tables once for the whole run."""
    instrument_engine(engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Session against the test database; every table is emptied afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for model in (PerfSlowQuery, PerfSample, PerfWatcherSettings, JobRun):
            session.execute(delete(model))
        session.commit()
        session.close()


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def make_sample(db: Session, now: datetime):
    """Factory inserting a PerfSample row; recorded_at defaults to one minute ago."""

    def _make(**overrides) -> PerfSample:
        values = {
            "recorded_at": now - timedelta(minutes=1),
            "url_path": "/v1/admin/dashboard",
            "screen_id": "dashboard",
            "hook_suffix": "/v1/admin/dashboard",
            "method": "GET",
            "user_id": 1,
            "user_roles": "administrator",
            "load_ms": 100,
            "query_count": 10,
            "peak_memory_bytes": 32 * 1024 * 1024,
            "plugins_hash": "0" * 64,
            "theme_slug": "default",
            "is_ajax": False,
            "is_heartbeat": False,
        }
        values.update(overrides)
        sample = PerfSample(**values)
        db.add(sample)
        db.commit()
        return sample

    return _make


@pytest.fixture
def make_token():
    return create_access_token


@pytest.fixture
def admin_headers() -> dict[str, str]:
    token = create_access_token(user_id=1, roles=["administrator"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def editor_headers() -> dict[str, str]:
    token = create_access_token(user_id=2, roles=["editor"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """TestClient for the real app (lifespan not run; tables come from _schema).

    Depends on ``db`` so rows captured by the middleware are cleaned up too.
    """
    from perfwatch.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()
