from __future__ import annotations

from typing import Callable, Iterable, Optional

from fastapi import HTTPException, Request

from branchops.core.auth.models import Principal
from branchops.core.auth.roles import ALL_ROLES


def get_principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


def current_principal(request: Request) -> Principal:
    """FastAPI dependency: the authenticated principal or 401."""
    principal = get_principal(request)
    if principal is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal


def _check_roles(allowed: Iterable[str]) -> list[str]:
    allowed = list(allowed)
    for r in allowed:
        if r not in ALL_ROLES and r != "regional_manager":
            raise ValueError(f"Unknown role: {r}")
    return allowed


def require_roles(*allowed_roles: str) -> Callable:
    """
    Dependency: allow only the listed roles.
    Example:
      principal: Principal = Depends(require_roles("admin", "operations_lead"))
    """
    allowed = _check_roles(allowed_roles)

    def dependency(request: Request) -> Principal:
        principal = current_principal(request)
        if not principal.has_any_role(allowed):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return principal

    return dependency


def enforce_roles(*, user_role: Optional[str], allowed_roles: Iterable[str]) -> bool:
    """
    Used by middleware policy enforcement.
    Returns True if allowed else False.
    """
    if not user_role or user_role not in ALL_ROLES:
        return False
    return user_role in set(allowed_roles)
