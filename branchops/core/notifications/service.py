from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, case, or_, select
from sqlalchemy.orm import Session

from branchops.core.auth.models import Principal
from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import Notification, NotificationRead
from branchops.core.errors import NotFoundError, ValidationError

log = logging.getLogger("branchops.notifications")

NOTIFICATION_TYPES = ("feature", "patch", "alert", "announcement", "urgent", "user_signup")
PRIORITIES = ("normal", "urgent")
DEFAULT_EXPIRY_DAYS = 7
LIST_LIMIT = 50


def user_identifier(principal: Principal) -> str:
    return f"user:{principal.subject}"


def to_dict(n: Notification, *, is_read: Optional[bool] = None) -> Dict[str, Any]:
    out = {
        "id": n.id,
        "type": n.type,
        "priority": n.priority,
        "title": n.title,
        "preview": n.preview,
        "content": n.content,
        "created_by": n.created_by,
        "is_active": n.is_active,
        "created_at": iso(n.created_at),
        "expires_at": iso(n.expires_at),
        "target_roles": n.target_roles,
        "related_user_id": n.related_user_id,
        "metadata": n.meta,
    }
    if is_read is not None:
        out["is_read"] = is_read
    return out


def create_notification(
    db: Session,
    *,
    type: str,
    title: str,
    preview: str,
    content: str,
    priority: str = "normal",
    created_by: str = "admin",
    expires_in_days: Optional[int] = None,
    target_roles: Optional[Iterable[str]] = None,
    related_user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> Notification:
    if not type or not title or not preview or not content:
        raise ValidationError("Missing required fields: type, title, preview, content")
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Invalid type. Must be one of: {', '.join(NOTIFICATION_TYPES)}")
    if priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")

    roles = [r for r in (target_roles or []) if r]
    n = Notification(
        type=type,
        priority=priority,
        title=title,
        preview=preview,
        content=content,
        created_by=created_by or "admin",
        expires_at=utc_now() + timedelta(days=int(expires_in_days or DEFAULT_EXPIRY_DAYS)),
        target_roles=roles or None,
        related_user_id=related_user_id,
        meta=metadata,
        is_active=True,
    )
    db.add(n)
    if commit:
        db.commit()
    else:
        db.flush()
    log.info("notification created id=%s type=%s roles=%s related_user=%s", n.id, type, roles, related_user_id)
    return n


def _visible_to(n: Notification, principal: Principal) -> bool:
    if n.related_user_id is not None and principal.user_id is not None and n.related_user_id == principal.user_id:
        return True
    if n.target_roles:
        return principal.role in n.target_roles
    return n.related_user_id is None


def list_for_user(db: Session, principal: Principal, *, limit: int = LIST_LIMIT) -> List[Dict[str, Any]]:
    """Active, unexpired notifications the principal may see; urgent first, then newest."""
    now = utc_now()
    candidates: Iterable[Notification] = db.scalars(
        select(Notification)
        .where(Notification.is_active.is_(True))
        .where(or_(Notification.expires_at.is_(None), Notification.expires_at > now))
        .order_by(
            case((Notification.priority == "urgent", 0), else_=1),
            Notification.created_at.desc(),
            Notification.id.desc(),
        )
    )
    visible = [n for n in candidates if _visible_to(n, principal)][:limit]

    ident = user_identifier(principal)
    read_ids = set()
    if visible:
        read_ids = set(
            db.scalars(
                select(NotificationRead.notification_id).where(
                    and_(
                        NotificationRead.user_identifier == ident,
                        NotificationRead.notification_id.in_([n.id for n in visible]),
                    )
                )
            )
        )
    return [to_dict(n, is_read=n.id in read_ids) for n in visible]


def mark_read(db: Session, notification_id: int, identifier: str) -> bool:
    """Idempotent; returns False if the read was already recorded."""
    if db.get(Notification, notification_id) is None:
        raise NotFoundError("Notification not found")
    existing = db.scalar(
        select(NotificationRead).where(
            NotificationRead.notification_id == notification_id,
            NotificationRead.user_identifier == identifier,
        )
    )
    if existing is not None:
        return False
    db.add(NotificationRead(notification_id=notification_id, user_identifier=identifier))
    db.commit()
    return True


def deactivate(db: Session, notification_id: int) -> Notification:
    n = db.get(Notification, notification_id)
    if n is None:
        raise NotFoundError("Notification not found")
    n.is_active = False
    db.commit()
    return n


# ------------------------------------------------------------
# Built-in notifications
# ------------------------------------------------------------
def notify_user_signup(db: Session, *, user_id: int, first_name: str, last_name: str, email: str) -> Notification:
    content = (
        "## New User Registration\n\n"
        f"**{first_name} {last_name}** has signed up and is waiting for approval.\n\n"
        f"**Email:** {email}\n\n"
        "Please review and approve or reject this user in the Admin panel."
    )
    return create_notification(
        db,
        type="user_signup",
        priority="urgent",
        title="New User Signup",
        preview=f"{first_name} {last_name} is waiting for approval",
        content=content,
        created_by="System",
        expires_in_days=30,
        target_roles=["admin"],
        related_user_id=user_id,
        metadata={"userId": user_id, "email": email, "firstName": first_name, "lastName": last_name},
        commit=False,
    )


def delete_signup_notifications(db: Session, user_id: int) -> int:
    rows = db.scalars(
        select(Notification).where(Notification.type == "user_signup", Notification.related_user_id == user_id)
    ).all()
    for n in rows:
        db.delete(n)
    return len(rows)


def notify_quality_feedback(
    db: Session,
    *,
    submitter_id: int,
    product_name: str,
    feedback_text: str,
    author_name: str,
    quality_check_id: int,
    feedback_id: int,
) -> Notification:
    preview = feedback_text[:100] + ("..." if len(feedback_text) > 100 else "")
    return create_notification(
        db,
        type="alert",
        priority="normal",
        title=f"Feedback on your {product_name} quality check",
        preview=preview,
        content=f"**{author_name}** left feedback on your quality check for **{product_name}**:\n\n{feedback_text}",
        created_by=author_name,
        expires_in_days=14,
        related_user_id=submitter_id,
        metadata={"qualityCheckId": quality_check_id, "feedbackId": feedback_id},
        commit=False,
    )
