from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from branchops.api.endpoints import (
    analytics,
    auth,
    branches,
    cron,
    dashboard,
    dispatch,
    health,
    metrics as metrics_ep,
    notifications,
    production,
    quality,
    recipes,
    users,
)
from branchops.api.middleware.audit import AuditMiddleware
from branchops.api.middleware.auth import AuthMiddleware, should_enable_auth_middleware
from branchops.api.middleware.error_shaping import SafeErrorMiddleware
from branchops.api.middleware.request_context import (
    RateLimitMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from branchops.core.branches.service import seed_if_empty
from branchops.core.db.session import init_db, new_session

log = logging.getLogger("branchops.api")

API_PREFIX = "/api/v1"


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name) or default).strip().lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = new_session()
    try:
        counts = seed_if_empty(db)
    finally:
        db.close()
    log.info("startup complete seeded=%s", counts)
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="BranchOps API", version="0.1.0", lifespan=lifespan)

    # ------------------------------------------------------------
    # Middleware stack (ORDER MATTERS)
    # Starlette reverses add_middleware order: the LAST call is the OUTERMOST wrapper.
    # Runtime order (outermost -> innermost):
    #   SafeErrorMiddleware -> CORSMiddleware -> SecurityHeaders -> RateLimit
    #   -> RequestContext -> Audit -> Auth -> handler
    # ------------------------------------------------------------
    env = (os.getenv("BRANCHOPS_ENV") or "dev").strip().lower()

    # Auth boundary:
    # - Enabled by default in runtime
    # - Disabled by default under pytest unless explicitly enabled via env
    pytest_running = bool(os.getenv("PYTEST_CURRENT_TEST"))
    auth_enabled = should_enable_auth_middleware()
    if pytest_running and os.getenv("BRANCHOPS_AUTH_ENABLED") is None:
        auth_enabled = False
    app.add_middleware(AuthMiddleware, enabled=auth_enabled)

    # Audit (needs the principal set by Auth)
    app.add_middleware(AuditMiddleware)

    # Request context (request_id + metrics + request log)
    app.add_middleware(RequestContextMiddleware)

    # Rate limiting (off by default)
    rl_rpm = int((os.getenv("BRANCHOPS_RATE_LIMIT_RPM") or "120").strip())
    app.add_middleware(RateLimitMiddleware, enabled=_flag("BRANCHOPS_RATE_LIMIT_ENABLED", "0"), rpm=rl_rpm)

    # Security headers (on in prod by default)
    sec_default = "true" if env == "prod" else "false"
    app.add_middleware(SecurityHeadersMiddleware, enabled=_flag("BRANCHOPS_SECURITY_HEADERS_ENABLED", sec_default))

    # CORS outside Auth so OPTIONS preflight never needs a token
    cors_raw = os.getenv("BRANCHOPS_CORS_ORIGINS", "").strip()
    cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()] if cors_raw else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # SafeErrorMiddleware LAST = outermost (catches exceptions from inner middleware)
    app.add_middleware(SafeErrorMiddleware)

    # ------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------
    app.include_router(health.router)
    app.include_router(metrics_ep.router)

    for module in (
        auth,
        users,
        branches,
        recipes,
        production,
        dispatch,
        quality,
        notifications,
        analytics,
        dashboard,
        cron,
    ):
        app.include_router(module.router, prefix=API_PREFIX)

    log.info("app created env=%s auth_enabled=%s", env, auth_enabled)
    return app


app = create_app()
