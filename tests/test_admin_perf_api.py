"""API tests for the admin report, export and settings endpoints."""

import json
from datetime import timedelta, timezone

from sqlalchemy import func, select

from perfwatch.models.performance import PerfSample
from perfwatch.services.perf_export import EXPORT_FILENAME
from perfwatch.services.perf_settings import load_settings, save_settings

REPORT_URL = "/v1/admin/perf/report"
EXPORT_URL = "/v1/admin/perf/export"
SETTINGS_URL = "/v1/admin/perf/settings"


def test_health(client):
    response = client.get("/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_report_requires_token(client):
    response = client.get(REPORT_URL)

    assert response.status_code == 401
    assert response.json()["request_id"]


def test_report_rejects_non_admin(client, editor_headers):
    response = client.get(REPORT_URL, headers=editor_headers)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ACCESS_DENIED"


def test_export_rejects_non_admin(client, editor_headers):
    assert client.get(EXPORT_URL, headers=editor_headers).status_code == 403


def test_report_shape(db, client, admin_headers, make_sample):
    save_settings(db, {"enabled": False})
    for load_ms in (10, 20, 30, 40, 1000):
        make_sample(load_ms=load_ms)

    response = client.get(REPORT_URL, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["slow_query_capture_available"] is False
    stats = body["stats"]
    assert stats["total_samples"] == 5
    assert stats["avg_load_ms"] == 220
    assert stats["p95_load_ms_estimate"] == 1000
    assert stats["range_days"] == 14
    assert stats["worst_outliers"][0]["load_ms"] == 1000
    assert stats["slowest_pages"][0]["samples"] == 5
    assert stats["recent_samples"] == []


def test_export_round_trip(db, client, admin_headers, make_sample):
    save_settings(db, {"enabled": False, "retention_days": 30, "sample_rate_percent": 80})
    make_sample(load_ms=120, user_roles="administrator,editor")
    make_sample(load_ms=480)

    response = client.get(EXPORT_URL, headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert EXPORT_FILENAME in response.headers["content-disposition"]
    assert "no-cache" in response.headers["cache-control"]
    assert "\n    " in response.text

    document = json.loads(response.text)
    assert set(document) == {"generated_at", "site_url", "settings", "stats"}
    assert document["settings"] == load_settings(db).model_dump()
    total = db.execute(select(func.count()).select_from(PerfSample)).scalar_one()
    assert document["stats"]["total_samples"] == total
    assert len(document["stats"]["recent_samples"]) == total
    assert document["stats"]["recent_samples"][-1]["user_roles"] == ["administrator", "editor"]


def test_settings_get_returns_defaults(client, admin_headers):
    response = client.get(SETTINGS_URL, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["sample_rate_percent"] == 25
    assert response.json()["updated_by_user_id"] is None


def test_settings_put_clamps_and_records_editor(db, client, admin_headers):
    response = client.put(
        SETTINGS_URL,
        headers=admin_headers,
        json={"data": {"enabled": False, "retention_days": 500, "slow_query_ms_threshold": "5"}},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["retention_days"] == 90
    assert data["slow_query_ms_threshold"] == 10
    assert data["enabled"] is False
    assert response.json()["updated_by_user_id"] == 1
    db.expire_all()
    assert load_settings(db).retention_days == 90


def test_settings_put_requires_admin(client, editor_headers):
    response = client.put(SETTINGS_URL, headers=editor_headers, json={"data": {"enabled": False}})

    assert response.status_code == 403


def test_report_since_with_offset(db, client, admin_headers, make_sample, now):
    save_settings(db, {"enabled": False})
    make_sample(recorded_at=now - timedelta(minutes=30))
    make_sample(recorded_at=now - timedelta(minutes=90))
    since = (now - timedelta(minutes=60)).astimezone(timezone(timedelta(hours=2)))

    response = client.get(REPORT_URL, headers=admin_headers, params={"since": since.isoformat()})

    assert response.status_code == 200
    assert response.json()["stats"]["total_samples"] == 1


def test_settings_put_without_data_wrapper_is_rejected(db, client, admin_headers):
    save_settings(db, {"enabled": False, "retention_days": 30})

    response = client.put(SETTINGS_URL, headers=admin_headers, json={"enabled": False})

    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"
    db.expire_all()
    assert load_settings(db).retention_days == 30
