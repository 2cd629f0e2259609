from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_db, require_roles, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.auth.models import Principal
from branchops.core.users import service as users

router = APIRouter(prefix="/users", tags=["users"])

_admin = require_roles("admin")
_user_admins = require_roles("admin", "dispatcher")


class ChangePasswordBody(CamelBody):
    current_password: str = ""
    new_password: str = ""


class CreateUserBody(CamelBody):
    email: str = ""
    password: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    nationality: Optional[str] = None
    phone: Optional[str] = None
    branches: List[str] = []


class ApproveBody(CamelBody):
    role: str = ""
    branches: List[str] = []


class RejectBody(CamelBody):
    reason: Optional[str] = None


class UpdateUserBody(CamelBody):
    role: Optional[str] = None
    status: Optional[str] = None
    branches: Optional[List[str]] = None


class ResetPasswordBody(CamelBody):
    new_password: str = ""


def _own_id(principal: Principal) -> int:
    if principal.user_id is None:
        raise HTTPException(status_code=400, detail="No user account is linked to this session")
    return principal.user_id


# ------------------------------------------------------------
# Self service
# ------------------------------------------------------------
@router.get("/me")
def me(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        user = users.get_user(db, _own_id(principal))
    return users.session_payload(user)


@router.post("/me/change-password")
def change_password(
    body: ChangePasswordBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        users.change_password(
            db,
            _own_id(principal),
            current_password=body.current_password,
            new_password=body.new_password,
        )
    return {"success": True, "message": "Password changed successfully"}


@router.get("/me/onboarding")
def get_onboarding(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return users.onboarding_state(users.get_user(db, _own_id(principal)))


@router.patch("/me/onboarding")
def patch_onboarding(
    body: Dict[str, Any],
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return users.update_onboarding(db, _own_id(principal), body)


@router.post("/me/onboarding/reset")
def reset_onboarding(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return users.reset_onboarding(db, _own_id(principal))


# ------------------------------------------------------------
# Administration
# ------------------------------------------------------------
@router.get("")
def list_users(pending: bool = False, db: Session = Depends(get_db), _: Principal = Depends(_user_admins)):
    return {"users": [users.to_dict(u) for u in users.list_users(db, pending_only=pending)]}


@router.post("", status_code=201)
def create_user(body: CreateUserBody, principal: Principal = Depends(_user_admins), db: Session = Depends(get_db)):
    with service_errors():
        user = users.create_user(
            db,
            actor=principal,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
            nationality=body.nationality,
            phone=body.phone,
            branches=body.branches,
        )
    return {"success": True, "message": "User created successfully", "user": users.to_dict(user)}


@router.post("/{user_id}/approve")
def approve(user_id: int, body: ApproveBody, principal: Principal = Depends(_admin), db: Session = Depends(get_db)):
    with service_errors():
        user = users.approve(db, user_id, role=body.role, approved_by=principal.user_id, branches=body.branches)
    return {"success": True, "message": "User approved successfully", "user": users.to_dict(user)}


@router.post("/{user_id}/reject")
def reject(user_id: int, body: RejectBody, _: Principal = Depends(_admin), db: Session = Depends(get_db)):
    with service_errors():
        user = users.reject(db, user_id, reason=body.reason)
    return {"success": True, "message": "User rejected", "user": users.to_dict(user)}


@router.patch("/{user_id}")
def update_user(
    user_id: int,
    body: UpdateUserBody,
    principal: Principal = Depends(_user_admins),
    db: Session = Depends(get_db),
):
    with service_errors():
        user = users.update(
            db,
            user_id,
            actor=principal,
            role=body.role,
            status=body.status,
            branches=body.branches,
        )
    return {"success": True, "message": "User updated successfully", "user": users.to_dict(user)}


@router.post("/{user_id}/reset-password")
def reset_password(user_id: int, body: ResetPasswordBody, _: Principal = Depends(_admin), db: Session = Depends(get_db)):
    with service_errors():
        users.reset_password(db, user_id, body.new_password)
    return {"success": True, "message": "Password reset successfully"}


@router.post("/{user_id}/deactivate")
def deactivate(user_id: int, principal: Principal = Depends(_admin), db: Session = Depends(get_db)):
    with service_errors():
        user = users.deactivate(db, user_id, actor=principal)
    return {"success": True, "message": "User deactivated", "user": users.to_dict(user)}
