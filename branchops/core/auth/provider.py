from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from branchops.core.auth.models import Principal


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class JwtConfig:
    signing_key: str
    issuer: Optional[str] = None
    audience: Optional[str] = None
    leeway_seconds: int = 30
    ttl_seconds: int = 12 * 3600


def _extract_bearer(request: Request) -> str:
    auth_header = (
        request.headers.get("authorization")
        or request.headers.get("x-forwarded-authorization")
    )
    if not auth_header:
        raise AuthError("Authentication required")
    if not auth_header.startswith("Bearer "):
        raise AuthError("Invalid authorization header")
    return auth_header.replace("Bearer ", "").strip()


def load_jwt_config() -> JwtConfig:
    key = (os.getenv("BRANCHOPS_SIGNING_KEY") or "").strip()
    if not key:
        raise AuthError("Missing BRANCHOPS_SIGNING_KEY for jwt mode")

    issuer = (os.getenv("BRANCHOPS_JWT_ISSUER") or "").strip() or None
    audience = (os.getenv("BRANCHOPS_JWT_AUDIENCE") or "").strip() or None
    leeway = int((os.getenv("BRANCHOPS_JWT_LEEWAY_SECONDS") or "30").strip() or "30")
    ttl = int((os.getenv("BRANCHOPS_JWT_TTL_SECONDS") or "43200").strip() or "43200")
    return JwtConfig(signing_key=key, issuer=issuer, audience=audience, leeway_seconds=leeway, ttl_seconds=ttl)


def issue_token(
    *,
    user_id: int,
    role: str,
    email: str,
    name: str,
    cfg: Optional[JwtConfig] = None,
) -> str:
    """Sign a session token for a logged-in user."""
    cfg = cfg or load_jwt_config()
    now = int(time.time())
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + cfg.ttl_seconds,
    }
    if cfg.issuer:
        claims["iss"] = cfg.issuer
    if cfg.audience:
        claims["aud"] = cfg.audience
    return jwt.encode(claims, cfg.signing_key, algorithm="HS256")


class StaticTokenProvider:
    """Service token (cron runners, sync jobs) mapped to an admin principal."""

    def __init__(self):
        self.admin_token = os.getenv("BRANCHOPS_STATIC_ADMIN_TOKEN")
        if not self.admin_token:
            raise AuthError("Missing static token config. Set BRANCHOPS_STATIC_ADMIN_TOKEN.")

    def authenticate(self, request: Request) -> Optional[Principal]:
        token = _extract_bearer(request)
        if token == self.admin_token:
            return Principal(subject="service", roles=["admin"], name="Service")
        raise AuthError("Invalid bearer token")


class JwtProvider:
    """
    Bearer tokens issued by /api/v1/auth/login, decoded with BRANCHOPS_SIGNING_KEY.
    Optional:
      BRANCHOPS_JWT_ISSUER
      BRANCHOPS_JWT_AUDIENCE
      BRANCHOPS_JWT_LEEWAY_SECONDS
    """

    def __init__(self):
        self.cfg = load_jwt_config()

    def authenticate(self, request: Request) -> Optional[Principal]:
        token = _extract_bearer(request)

        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_iat": False,
            "verify_nbf": True,
            "verify_iss": self.cfg.issuer is not None,
            "verify_aud": self.cfg.audience is not None,
        }

        try:
            claims = jwt.decode(
                token,
                self.cfg.signing_key,
                algorithms=["HS256"],
                issuer=self.cfg.issuer,
                audience=self.cfg.audience,
                options=options,
                leeway=self.cfg.leeway_seconds,
            )
        except jwt.PyJWTError:
            raise AuthError("Invalid bearer token")

        sub = str(claims.get("sub") or "")
        role = claims.get("role")
        if not sub or not role:
            raise AuthError("Invalid bearer token")
        return Principal(
            subject=sub,
            roles=[role],
            email=claims.get("email"),
            name=claims.get("name"),
            user_id=int(sub) if sub.isdigit() else None,
        )


def get_auth_provider():
    mode = (os.getenv("BRANCHOPS_AUTH_MODE") or "jwt").strip().lower()
    env = (os.getenv("BRANCHOPS_ENV") or "dev").strip().lower()

    if mode == "none":
        return None

    if mode == "static_token":
        if env == "prod" and (os.getenv("BRANCHOPS_ALLOW_STATIC_TOKEN_IN_PROD") or "").strip().lower() not in ("1", "true", "yes"):
            raise AuthError("static_token not allowed in prod (set BRANCHOPS_ALLOW_STATIC_TOKEN_IN_PROD=true to override)")
        return StaticTokenProvider()

    if mode == "jwt":
        return JwtProvider()

    raise AuthError(f"Unsupported auth mode: {mode}")
