from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from branchops.api.observability.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_TOTAL,
    normalize_path,
)

log = logging.getLogger("branchops.request")

# Caller supplied ids end up in logs and the audit file.
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def request_id_for(request: Request) -> str:
    supplied = (request.headers.get("x-request-id") or "").strip()
    if supplied and _REQUEST_ID_RE.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Request ID, Prometheus request metrics and one log line per API call.

    Sets ``request.state.request_id`` and the ``X-Request-Id`` response header.
    The line carries the authenticated user id and role, never the token.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request_id_for(request)
        request.state.request_id = rid

        start = time.perf_counter()
        resp = await call_next(request)
        elapsed = time.perf_counter() - start
        resp.headers["X-Request-Id"] = rid

        route = normalize_path(request.url.path)
        method = request.method.upper()
        HTTP_REQUESTS_TOTAL.labels(method=method, path=route, status=str(resp.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=route).observe(elapsed)

        if request.url.path.startswith("/api/"):
            principal = getattr(request.state, "principal", None)
            log.info(
                "request rid=%s method=%s route=%s status=%s ms=%d user=%s role=%s",
                rid,
                method,
                route,
                resp.status_code,
                int(elapsed * 1000),
                principal.subject if principal else "-",
                principal.role if principal else "-",
            )
        return resp


SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Browser hardening headers; API responses are also marked ``no-store``
    since they carry staff details and session tokens."""

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        resp = await call_next(request)
        if not self.enabled:
            return resp
        for name, value in SECURITY_HEADERS.items():
            resp.headers.setdefault(name, value)
        if request.url.path.startswith("/api/"):
            resp.headers.setdefault("Cache-Control", "no-store")
        return resp


class FixedWindowLimiter:
    """Per-key request counts over one-minute windows.

    Keys from earlier windows are dropped the first time a new window is seen,
    so memory tracks the clients active in the current minute.
    """

    def __init__(self, rpm: int, clock: Callable[[], float] = time.time):
        self.rpm = rpm
        self._clock = clock
        self._window = -1
        self._counts: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def hit(self, key: str) -> Tuple[bool, int, int]:
        """Count one request. Returns (allowed, remaining, seconds until reset)."""
        now = self._clock()
        window = int(now // 60)
        if window != self._window:
            self._window = window
            self._counts = {}
        count = self._counts.get(key, 0) + 1
        self._counts[key] = count
        reset_in = max(1, int((window + 1) * 60 - now))
        return count <= self.rpm, max(0, self.rpm - count), reset_in


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed one-minute window per client IP, API surface only.
    Controlled by:
      BRANCHOPS_RATE_LIMIT_ENABLED=true/false
      BRANCHOPS_RATE_LIMIT_RPM=120  (requests per minute, minimum 10)
    """

    def __init__(self, app, enabled: bool = False, rpm: int = 120, limiter: Optional[FixedWindowLimiter] = None):
        super().__init__(app)
        self.enabled = enabled
        self.limiter = limiter or FixedWindowLimiter(max(10, int(rpm)))

    @staticmethod
    def client_key(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or not request.url.path.startswith("/api/"):
            return await call_next(request)

        key = self.client_key(request)
        allowed, remaining, reset_in = self.limiter.hit(key)
        if not allowed:
            log.info("rate limited key=%s path=%s", key, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded"},
                headers={"Retry-After": str(reset_in)},
            )

        resp = await call_next(request)
        resp.headers["X-RateLimit-Limit"] = str(self.limiter.rpm)
        resp.headers["X-RateLimit-Remaining"] = str(remaining)
        return resp
