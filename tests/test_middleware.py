import json

from fastapi.testclient import TestClient

from branchops.api.main import create_app
from branchops.api.middleware.request_context import FixedWindowLimiter
from branchops.core.observability.audit import audit_path


def test_request_id_generated_and_passed_through(client):
    r = client.get("/api/v1/health/live")
    assert r.status_code == 200
    assert len(r.headers["X-Request-Id"]) > 10

    r = client.get("/api/v1/health/live", headers={"X-Request-Id": "test-rid-123"})
    assert r.headers["X-Request-Id"] == "test-rid-123"

    # ids that could not be logged safely are replaced
    r = client.get("/api/v1/health/live", headers={"X-Request-Id": "bad id; forged=1"})
    assert r.headers["X-Request-Id"] != "bad id; forged=1"


def test_audit_log_records_actor_and_status(client, make_user, headers_for):
    user = make_user("operations_lead")
    r = client.get("/api/v1/users/me", headers=dict(headers_for(user), **{"X-Request-Id": "rid-audit"}))
    assert r.status_code == 200
    client.get("/api/v1/users/me", headers={"Authorization": "Basic abc"})

    lines = audit_path().read_text(encoding="utf-8").strip().splitlines()
    records = [json.loads(line) for line in lines]
    ok, denied = records[-2], records[-1]

    assert ok["type"] == "http_request"
    assert ok["request_id"] == "rid-audit"
    assert ok["actor"] == str(user.id)
    assert ok["role"] == "operations_lead"
    assert ok["http"] == {"method": "GET", "path": "/api/v1/users/me", "status": 200}
    # token contents are never written, only that one was presented
    assert denied["actor"] == "bearer"
    assert denied["http"]["status"] == 401


def test_audit_skips_non_api_paths(client):
    client.get("/health")
    path = audit_path()
    assert not path.exists() or "/health\"" not in path.read_text(encoding="utf-8")


def test_rate_limit_per_client(monkeypatch):
    monkeypatch.setenv("BRANCHOPS_RATE_LIMIT_ENABLED", "1")
    monkeypatch.setenv("BRANCHOPS_RATE_LIMIT_RPM", "10")
    c = TestClient(create_app())

    headers = {"X-Forwarded-For": "1.2.3.4"}
    codes = [c.get("/api/v1/health/live", headers=headers).status_code for _ in range(11)]
    assert codes[:10] == [200] * 10
    assert codes[10] == 429
    assert int(c.get("/api/v1/health/live", headers=headers).headers["Retry-After"]) >= 1

    # other clients and non-API paths are unaffected
    assert c.get("/api/v1/health/live", headers={"X-Forwarded-For": "5.6.7.8"}).status_code == 200
    assert c.get("/health", headers=headers).status_code == 200


def test_limiter_drops_previous_windows():
    now = [600.0]
    limiter = FixedWindowLimiter(rpm=2, clock=lambda: now[0])

    assert limiter.hit("1.1.1.1") == (True, 1, 60)
    assert limiter.hit("1.1.1.1")[0] is True
    assert limiter.hit("1.1.1.1")[0] is False
    limiter.hit("2.2.2.2")
    assert len(limiter) == 2

    now[0] = 665.0
    assert limiter.hit("3.3.3.3") == (True, 1, 55)
    assert len(limiter) == 1
    assert limiter.hit("1.1.1.1")[0] is True


def test_security_headers(monkeypatch):
    plain = TestClient(create_app()).get("/api/v1/health/live")
    assert "X-Frame-Options" not in plain.headers

    monkeypatch.setenv("BRANCHOPS_SECURITY_HEADERS_ENABLED", "1")
    r = TestClient(create_app()).get("/api/v1/health/live")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "no-referrer"
    assert r.headers["Cache-Control"] == "no-store"


def test_cors_preflight_needs_no_token(client):
    r = client.options(
        "/api/v1/users",
        headers={"Origin": "https://ops.example.com", "Access-Control-Request-Method": "GET"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "https://ops.example.com"


def test_unhandled_errors_hide_traceback(app, client, admin_headers):
    def boom():
        raise RuntimeError("database password is hunter2")

    app.add_api_route("/api/v1/boom", boom)
    r = client.get("/api/v1/boom", headers=dict(admin_headers, **{"X-Request-Id": "rid-boom"}))
    assert r.status_code == 500
    assert r.json() == {"detail": "Internal Server Error", "request_id": "rid-boom"}
    assert "hunter2" not in r.text
    assert "Traceback" not in r.text


def test_unknown_api_path_without_token(client):
    r = client.get("/api/v1/does/not/exist")
    assert r.status_code == 401
    assert "Traceback" not in r.text
