"""User accounts: signup, approval workflow, branch access and onboarding state."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.auth.models import Principal
from branchops.core.auth.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from branchops.core.auth.roles import (
    BRANCH_SCOPED_ROLES,
    CENTRAL_KITCHEN_SLUG,
    GLOBAL_BRANCH_ROLES,
    PROTECTED_ROLES,
    UserRole,
    UserStatus,
    is_valid_role,
    landing_page_for,
)
from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import User, UserBranchAccess
from branchops.core.errors import (
    AuthenticationFailed,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from branchops.core.notifications import service as notifications

log = logging.getLogger("branchops.users")


def to_dict(user: User, *, include_branches: bool = True) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "nationality": user.nationality,
        "phone": user.phone,
        "role": user.role,
        "status": user.status,
        "approvedBy": user.approved_by,
        "approvedAt": iso(user.approved_at),
        "rejectedReason": user.rejection_reason,
        "lastLogin": iso(user.last_login),
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }
    if include_branches:
        out["branches"] = user.branch_slugs
    return out


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == _normalize_email(email)))


def list_users(db: Session, *, pending_only: bool = False) -> List[User]:
    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    if pending_only:
        stmt = stmt.where(User.status == UserStatus.PENDING.value)
    return list(db.scalars(stmt))


def _validate_password(password: str, *, field: str = "Password") -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"{field} must be at least {MIN_PASSWORD_LENGTH} characters")


def _assign_branches(db: Session, user: User, role: Optional[str], branches: Iterable[str], assigned_by: Optional[int]) -> None:
    """Replace the user's branch access. Branch staff keep only their first branch."""
    user.branch_access.clear()
    db.flush()
    if role not in BRANCH_SCOPED_ROLES:
        return
    slugs = [b for b in (branches or []) if b]
    if role == UserRole.BRANCH_STAFF.value:
        slugs = slugs[:1]
    for slug in dict.fromkeys(slugs):
        user.branch_access.append(UserBranchAccess(branch_slug=slug, assigned_by=assigned_by))


# ------------------------------------------------------------
# Signup / login
# ------------------------------------------------------------
def signup(
    db: Session,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    nationality: Optional[str] = None,
    phone: Optional[str] = None,
) -> User:
    if not email or not password or not first_name or not last_name:
        raise ValidationError("Missing required fields")
    _validate_password(password)
    if find_by_email(db, email) is not None:
        raise ConflictError("An account with this email already exists")

    user = User(
        email=_normalize_email(email),
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        nationality=nationality or None,
        phone=phone or None,
        status=UserStatus.PENDING.value,
        tours_completed=[],
    )
    db.add(user)
    db.flush()
    notifications.notify_user_signup(
        db,
        user_id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    )
    db.commit()
    log.info("signup user_id=%s email=%s", user.id, user.email)
    return user


def authenticate(db: Session, *, email: str, password: str) -> User:
    if not email or not password:
        raise ValidationError("Please enter your email and password")
    user = find_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationFailed("Invalid email or password")
    if user.status == UserStatus.PENDING.value:
        raise PermissionDenied("Your account is pending approval")
    if user.status != UserStatus.ACTIVE.value:
        raise PermissionDenied("Your account has been deactivated. Please contact an administrator.")

    user.last_login = utc_now()
    db.commit()
    return user


def session_payload(user: User) -> Dict[str, Any]:
    return {
        "user": to_dict(user),
        "landingPage": landing_page_for(user.role),
    }


# ------------------------------------------------------------
# Administration
# ------------------------------------------------------------
def create_user(
    db: Session,
    *,
    actor: Principal,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str,
    nationality: Optional[str] = None,
    phone: Optional[str] = None,
    branches: Optional[List[str]] = None,
) -> User:
    if not email or not password or not first_name or not last_name or not role:
        raise ValidationError("Missing required fields")
    if not is_valid_role(role):
        raise ValidationError("Invalid role")
    if actor.role == UserRole.DISPATCHER.value and role in PROTECTED_ROLES:
        raise PermissionDenied("You do not have permission to assign Admin or Operations Lead roles")
    _validate_password(password)
    if find_by_email(db, email) is not None:
        raise ValidationError("Email already exists")

    user = User(
        email=_normalize_email(email),
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        nationality=nationality or None,
        phone=phone or None,
        role=role,
        status=UserStatus.ACTIVE.value,
        approved_by=actor.user_id,
        approved_at=utc_now(),
        tours_completed=[],
    )
    db.add(user)
    db.flush()
    _assign_branches(db, user, role, branches or [], actor.user_id)
    db.commit()
    log.info("user created user_id=%s role=%s by=%s", user.id, role, actor.subject)
    return user


def approve(
    db: Session,
    user_id: int,
    *,
    role: str,
    approved_by: Optional[int],
    branches: Optional[List[str]] = None,
) -> User:
    if not role:
        raise ValidationError("Role is required for approval")
    if not is_valid_role(role):
        raise ValidationError("Invalid role")
    user = get_user(db, user_id)
    user.role = role
    user.status = UserStatus.ACTIVE.value
    user.approved_by = approved_by
    user.approved_at = utc_now()
    user.rejection_reason = None
    _assign_branches(db, user, role, branches or [], approved_by)
    notifications.delete_signup_notifications(db, user.id)
    db.commit()
    log.info("user approved user_id=%s role=%s", user.id, role)
    return user


def reject(db: Session, user_id: int, *, reason: Optional[str] = None) -> User:
    user = get_user(db, user_id)
    user.status = UserStatus.REJECTED.value
    user.rejection_reason = reason or "Application rejected"
    notifications.delete_signup_notifications(db, user.id)
    db.commit()
    log.info("user rejected user_id=%s", user.id)
    return user


def update(
    db: Session,
    user_id: int,
    *,
    actor: Principal,
    role: Optional[str] = None,
    status: Optional[str] = None,
    branches: Optional[List[str]] = None,
) -> User:
    user = get_user(db, user_id)
    if actor.role == UserRole.DISPATCHER.value and user.role in PROTECTED_ROLES:
        raise PermissionDenied("You do not have permission to modify Admin or Operations Lead accounts")
    if role is not None:
        if not is_valid_role(role):
            raise ValidationError("Invalid role")
        if actor.role == UserRole.DISPATCHER.value and role in PROTECTED_ROLES:
            raise PermissionDenied("You do not have permission to assign Admin or Operations Lead roles")
        user.role = role
    if status is not None:
        if status not in {s.value for s in UserStatus}:
            raise ValidationError("Invalid status")
        if status != UserStatus.ACTIVE.value and actor.user_id is not None and actor.user_id == user_id:
            raise ValidationError("Cannot deactivate your own account")
        user.status = status
    if branches is not None:
        _assign_branches(db, user, user.role, branches, actor.user_id)
    db.commit()
    return user


def reset_password(db: Session, user_id: int, new_password: str) -> User:
    if not new_password:
        raise ValidationError("New password is required")
    _validate_password(new_password)
    user = get_user(db, user_id)
    user.password_hash = hash_password(new_password)
    db.commit()
    return user


def deactivate(db: Session, user_id: int, *, actor: Principal) -> User:
    if actor.user_id is not None and actor.user_id == user_id:
        raise ValidationError("Cannot deactivate your own account")
    user = get_user(db, user_id)
    user.status = UserStatus.INACTIVE.value
    db.commit()
    return user


def change_password(db: Session, user_id: int, *, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")
    _validate_password(new_password, field="New password")
    user = get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.commit()


# ------------------------------------------------------------
# Branch access
# ------------------------------------------------------------
def branches_for(db: Session, principal: Principal) -> Optional[List[str]]:
    """Branch slugs the principal is limited to, or None for unrestricted roles."""
    role = principal.role
    if role in GLOBAL_BRANCH_ROLES:
        return None
    if role == UserRole.CENTRAL_KITCHEN.value:
        return [CENTRAL_KITCHEN_SLUG]
    if principal.user_id is None:
        return []
    rows = db.scalars(
        select(UserBranchAccess.branch_slug).where(UserBranchAccess.user_id == principal.user_id)
    )
    return sorted(rows)


def has_branch_access(db: Session, principal: Principal, branch_slug: str) -> bool:
    allowed = branches_for(db, principal)
    return allowed is None or branch_slug in allowed


# ------------------------------------------------------------
# Onboarding
# ------------------------------------------------------------
ONBOARDING_FIELDS = {
    "onboardingCompleted": "onboarding_completed",
    "toursCompleted": "tours_completed",
    "onboardingSkipped": "onboarding_skipped",
    "onboardingStartedAt": "onboarding_started_at",
}


def onboarding_state(user: User) -> Dict[str, Any]:
    return {
        "onboardingCompleted": bool(user.onboarding_completed),
        "toursCompleted": list(user.tours_completed or []),
        "onboardingSkipped": bool(user.onboarding_skipped),
        "onboardingStartedAt": iso(user.onboarding_started_at),
    }


def _coerce_onboarding(attr: str, value: Any) -> Any:
    if attr == "onboarding_started_at" and isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError as exc:
            raise ValidationError("Invalid onboardingStartedAt") from exc
    if attr == "tours_completed":
        return list(value or [])
    return value


def update_onboarding(db: Session, user_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    user = get_user(db, user_id)
    applied = 0
    for key, attr in ONBOARDING_FIELDS.items():
        if key in changes:
            setattr(user, attr, _coerce_onboarding(attr, changes[key]))
            applied += 1
    if not applied:
        raise ValidationError("No fields to update")
    db.commit()
    return onboarding_state(user)


def reset_onboarding(db: Session, user_id: int) -> Dict[str, Any]:
    user = get_user(db, user_id)
    user.onboarding_completed = False
    user.tours_completed = []
    user.onboarding_skipped = False
    user.onboarding_started_at = None
    db.commit()
    return onboarding_state(user)
