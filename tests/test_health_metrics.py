import pytest
from sqlalchemy.exc import OperationalError

from branchops.api.endpoints import health
from branchops.api.observability.metrics import normalize_path


def test_health_endpoints_are_public(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/api/v1/health/live").json() == {"status": "alive"}
    r = client.get("/api/v1/health/ready")
    assert r.status_code == 200
    assert r.json() == {"status": "ready"}


def test_readiness_reports_database_failure(client, monkeypatch):
    class BrokenEngine:
        def connect(self):
            raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(health, "get_engine", lambda: BrokenEngine())
    r = client.get("/api/v1/health/ready")
    assert r.status_code == 503
    assert r.json() == {"status": "not_ready", "problems": ["database_unavailable:OperationalError"]}


def test_metrics_exposes_request_counters(client, admin_headers):
    client.get("/api/v1/notifications/7/read", headers=admin_headers)
    client.get("/api/v1/analytics/sales/summary", headers={})
    body = client.get("/metrics").text
    assert "branchops_http_requests_total" in body
    assert "branchops_http_request_duration_seconds" in body
    assert "branchops_authz_decisions_total" in body
    assert 'path="/api/v1/notifications/:id/read"' in body


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("/api/v1/notifications/12/read", "/api/v1/notifications/:id/read"),
        ("/api/v1/quality-checks/7", "/api/v1/quality-checks/:id"),
        ("/api/v1/recipes/butter-chicken", "/api/v1/recipes/:slug"),
        ("/api/v1/recipes/butter-chicken/scale", "/api/v1/recipes/butter-chicken/scale"),
        ("/api/v1/branches/isc-dip", "/api/v1/branches/:slug"),
        ("/api/v1/production-schedules/week-2025-11-02", "/api/v1/production-schedules/:schedule"),
        (
            "/api/v1/dispatch/dispatch-2025-11-03-1730600000000/branches/isc-dip/items",
            "/api/v1/dispatch/:dispatch/branches/:branch/items",
        ),
        ("", "/"),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected
