from __future__ import annotations

import logging
import os
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from branchops.api.observability.metrics import AUTHZ_DECISIONS_TOTAL, normalize_path
from branchops.core.auth.models import Principal
from branchops.core.auth.policy import allowed_roles_for, is_public_path
from branchops.core.auth.provider import AuthError, get_auth_provider
from branchops.core.auth.rbac import enforce_roles

log = logging.getLogger("branchops.auth")

_DEV_PRINCIPAL = Principal(subject="anonymous", roles=["admin"], name="Developer")


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Authenticates /api/v1 requests and applies the route policy.

    Sets request.state.principal; public paths pass through without one.
    """

    def __init__(self, app, *, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled
        self.provider = None
        self._provider_loaded = False

    def _provider(self):
        if not self._provider_loaded:
            self.provider = get_auth_provider()
            self._provider_loaded = True
        return self.provider

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method.upper()

        if not path.startswith("/api/v1/") or is_public_path(path) or method == "OPTIONS":
            return await call_next(request)

        # Auth disabled (dev-only): allow everything as admin
        if not self.enabled:
            request.state.principal = _DEV_PRINCIPAL
            return await call_next(request)

        try:
            provider = self._provider()
            principal = provider.authenticate(request) if provider is not None else _DEV_PRINCIPAL
        except AuthError as e:
            log.info("authn deny method=%s path=%s reason=%s", method, path, str(e))
            return JSONResponse(status_code=401, content={"detail": str(e)})

        request.state.principal = principal

        allowed = allowed_roles_for(method, path)
        if allowed is not None:
            role = principal.role
            norm = normalize_path(path)
            if not enforce_roles(user_role=role, allowed_roles=allowed):
                AUTHZ_DECISIONS_TOTAL.labels(decision="deny", role=str(role), method=method, path=norm).inc()
                log.info("authz deny subject=%s role=%s method=%s path=%s", principal.subject, role, method, path)
                return JSONResponse(
                    status_code=403,
                    content={"detail": "Insufficient role", "allowed_roles": sorted(allowed), "actual_role": role},
                )
            AUTHZ_DECISIONS_TOTAL.labels(decision="allow", role=str(role), method=method, path=norm).inc()
            log.debug("authz allow subject=%s role=%s method=%s path=%s", principal.subject, role, method, path)

        return await call_next(request)


def should_enable_auth_middleware() -> bool:
    v = (os.getenv("BRANCHOPS_AUTH_ENABLED", "true") or "true").strip().lower()
    return v not in ("0", "false", "no")
