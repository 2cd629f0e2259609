from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from branchops.core.observability.audit import audit_event


def _extract_actor(request: Request) -> tuple[str | None, str | None]:
    principal = getattr(request.state, "principal", None)
    if principal is not None:
        return principal.subject, principal.role

    # Authorization presence only (do not log token)
    if request.headers.get("Authorization"):
        return "bearer", None
    return None, None


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response | None = None
        status: int | None = None
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            if request.url.path.startswith("/api/"):
                actor, role = _extract_actor(request)
                audit_event(
                    event_type="http_request",
                    request_id=getattr(request.state, "request_id", None),
                    actor=actor,
                    role=role,
                    method=request.method,
                    path=request.url.path,
                    status_code=status,
                )
