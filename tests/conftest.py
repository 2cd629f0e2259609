import io
import itertools
import json

import openpyxl
import pytest
from fastapi.testclient import TestClient

from branchops.api.deps import get_ai_gateway
from branchops.api.main import create_app
from branchops.core.ai.gateway import AIGatewayService
from branchops.core.auth.passwords import hash_password
from branchops.core.auth.provider import issue_token
from branchops.core.branches.service import seed_if_empty
from branchops.core.db.models import User, UserBranchAccess
from branchops.core.db.session import init_db, new_session, reset_engine

SIGNING_KEY = "branchops-test-signing-key-0123456789abcdef"
DEFAULT_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def _test_env(tmp_path, monkeypatch):
    # Each test gets its own sqlite database and audit log
    monkeypatch.setenv("BRANCHOPS_ENV", "dev")
    monkeypatch.setenv("BRANCHOPS_DATABASE_URL", f"sqlite:///{tmp_path / 'branchops.db'}")
    monkeypatch.setenv("BRANCHOPS_AUTH_ENABLED", "1")
    monkeypatch.setenv("BRANCHOPS_AUTH_MODE", "jwt")
    monkeypatch.setenv("BRANCHOPS_SIGNING_KEY", SIGNING_KEY)
    monkeypatch.setenv("BRANCHOPS_AUDIT_LOG", str(tmp_path / "audit.log"))
    for name in (
        "BRANCHOPS_RATE_LIMIT_ENABLED",
        "BRANCHOPS_RATE_LIMIT_RPM",
        "BRANCHOPS_SECURITY_HEADERS_ENABLED",
        "BRANCHOPS_JWT_ISSUER",
        "BRANCHOPS_JWT_AUDIENCE",
        "OPENAI_API_KEY",
        "CRON_SECRET",
        "SYNC_FILES",
    ):
        monkeypatch.delenv(name, raising=False)

    reset_engine()
    init_db()
    db = new_session()
    try:
        seed_if_empty(db)
    finally:
        db.close()
    yield
    reset_engine()


@pytest.fixture()
def db():
    session = new_session()
    yield session
    session.close()


@pytest.fixture()
def app():
    app = create_app()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def make_user(db):
    counter = itertools.count(1)

    def _make(role, *, branches=(), status="active", password=DEFAULT_PASSWORD, email=None):
        n = next(counter)
        user = User(
            email=email or f"{role}{n}@example.com",
            password_hash=hash_password(password),
            first_name=role.replace("_", " ").title(),
            last_name=f"User{n}",
            role=role,
            status=status,
            tours_completed=[],
        )
        for slug in branches:
            user.branch_access.append(UserBranchAccess(branch_slug=slug))
        db.add(user)
        db.commit()
        return user

    return _make


def _headers_for(user):
    token = issue_token(user_id=user.id, role=user.role, email=user.email, name=user.full_name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return _headers_for


@pytest.fixture()
def as_role(make_user):
    """Bearer headers for a fresh active user of ``role``."""

    def _as(role, **kwargs):
        return _headers_for(make_user(role, **kwargs))

    return _as


@pytest.fixture()
def admin_headers(as_role):
    return as_role("admin")


class StubLLM:
    """Returns canned completions in order; the last one repeats."""

    def __init__(self, *responses):
        self.responses = [r if isinstance(r, str) else json.dumps(r) for r in responses]
        self.calls = []

    def complete(self, *, task, model, system_prompt, user_content, json_mode, temperature):
        self.calls.append({"task": task, "model": model, "user_content": user_content, "json_mode": json_mode})
        content = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return content, 12, 34


@pytest.fixture()
def use_llm(app):
    """Route every AI call of the app through a StubLLM with the given responses."""

    def _use(*responses):
        stub = StubLLM(*responses)
        app.dependency_overrides[get_ai_gateway] = lambda: AIGatewayService(client=stub, require_api_key=False)
        return stub

    return _use


@pytest.fixture()
def make_xlsx():
    def _make(headers, rows):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(list(headers))
        for row in rows:
            ws.append(list(row))
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()

    return _make
