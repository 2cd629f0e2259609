"""Quality checks submitted by branches, admin review and manager feedback."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from branchops.core.auth.models import Principal
from branchops.core.auth.roles import BRANCH_SCOPED_ROLES
from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import Branch, QualityCheck, QualityFeedback, User
from branchops.core.errors import NotFoundError, PermissionDenied, ValidationError
from branchops.core.notifications import service as notifications
from branchops.core.users.service import branches_for, has_branch_access

log = logging.getLogger("branchops.quality")

MEAL_SERVICES = ("breakfast", "lunch")
SECTIONS = ("Hot", "Cold", "Bakery", "Beverages")
STATUSES = ("submitted", "reviewed", "flagged")

REQUIRED_FIELDS = (
    "branchSlug",
    "mealService",
    "productName",
    "section",
    "tasteScore",
    "appearanceScore",
    "portionQtyGm",
    "tempCelsius",
)

SUBMITTER_ROLES = frozenset({"branch_manager", "branch_staff", "admin", "operations_lead"})
QUALITY_ADMINS = frozenset({"admin", "operations_lead"})
FEEDBACK_ROLES = frozenset({"admin", "regional_manager", "operations_lead"})

DEFAULT_LIST_LIMIT = 50
MAX_FEEDBACK_CHARS = 2000


def _name(user: Optional[User]) -> Optional[str]:
    return user.full_name if user is not None else None


def to_dict(
    qc: QualityCheck,
    *,
    branch_name: Optional[str] = None,
    include_email: bool = False,
) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": qc.id,
        "branchSlug": qc.branch_slug,
        "submittedBy": qc.submitted_by,
        "submissionDate": iso(qc.submission_date),
        "mealService": qc.meal_service,
        "productName": qc.product_name,
        "section": qc.section,
        "tasteScore": qc.taste_score,
        "appearanceScore": qc.appearance_score,
        "portionQtyGm": qc.portion_qty_gm,
        "tempCelsius": qc.temp_celsius,
        "tasteNotes": qc.taste_notes,
        "portionNotes": qc.portion_notes,
        "appearanceNotes": qc.appearance_notes,
        "remarks": qc.remarks,
        "correctiveActionTaken": bool(qc.corrective_action_taken),
        "correctiveActionNotes": qc.corrective_action_notes,
        "photos": qc.photos or [],
        "customFields": qc.custom_fields or {},
        "status": qc.status,
        "adminNotes": qc.admin_notes,
        "reviewedBy": qc.reviewed_by,
        "reviewedAt": iso(qc.reviewed_at),
        "createdAt": iso(qc.created_at),
        "submitterName": _name(qc.submitter),
        "branchName": branch_name,
    }
    if include_email:
        out["submitterEmail"] = qc.submitter.email if qc.submitter is not None else None
    return out


def feedback_to_dict(fb: QualityFeedback) -> Dict[str, Any]:
    return {
        "id": fb.id,
        "qualityCheckId": fb.quality_check_id,
        "feedbackText": fb.feedback_text,
        "feedbackBy": fb.feedback_by,
        "feedbackByName": _name(fb.author),
        "feedbackByRole": fb.author.role if fb.author is not None else None,
        "isRead": bool(fb.is_read),
        "readAt": iso(fb.read_at),
        "createdAt": iso(fb.created_at),
    }


def _branch_names(db: Session) -> Dict[str, str]:
    return {slug: name for slug, name in db.execute(select(Branch.slug, Branch.name))}


# ------------------------------------------------------------
# Access
# ------------------------------------------------------------
def visible_branches(db: Session, principal: Principal) -> Optional[List[str]]:
    """None for quality admins, otherwise the branch slugs the principal may see."""
    if principal.has_any_role(QUALITY_ADMINS):
        return None
    scoped = branches_for(db, principal)
    # dispatchers are global for dispatch but not for quality data
    return scoped if scoped is not None else []


def _ensure_can_view(db: Session, principal: Principal, qc: QualityCheck) -> None:
    allowed = visible_branches(db, principal)
    if allowed is not None and qc.branch_slug not in allowed:
        raise PermissionDenied("Access denied")


def _get(db: Session, check_id: int) -> QualityCheck:
    qc = db.get(QualityCheck, check_id)
    if qc is None:
        raise NotFoundError("Quality check not found")
    return qc


# ------------------------------------------------------------
# CRUD
# ------------------------------------------------------------
def _missing(value: Any) -> bool:
    return value is None or value == ""


def _score(payload: Dict[str, Any], key: str, label: str) -> int:
    try:
        score = int(payload[key])
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} score must be between 1 and 5") from exc
    if score < 1 or score > 5:
        raise ValidationError(f"{label} score must be between 1 and 5")
    return score


def _number(payload: Dict[str, Any], key: str) -> float:
    try:
        return float(payload[key])
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid number for {key}") from exc


def create_check(db: Session, principal: Principal, payload: Dict[str, Any]) -> Dict[str, Any]:
    if not principal.has_any_role(SUBMITTER_ROLES):
        raise PermissionDenied("You do not have permission to submit quality checks")
    if principal.user_id is None:
        raise PermissionDenied("A user account is required to submit quality checks")

    payload = payload or {}
    for field in REQUIRED_FIELDS:
        if _missing(payload.get(field)):
            raise ValidationError(f"Missing required field: {field}")

    slug = str(payload["branchSlug"])
    if principal.role in BRANCH_SCOPED_ROLES and not has_branch_access(db, principal, slug):
        raise PermissionDenied("You do not have access to this branch")
    if payload["mealService"] not in MEAL_SERVICES:
        raise ValidationError("Invalid meal service. Must be breakfast or lunch")

    qc = QualityCheck(
        branch_slug=slug,
        submitted_by=principal.user_id,
        submission_date=utc_now(),
        meal_service=payload["mealService"],
        product_name=str(payload["productName"]).strip(),
        section=str(payload["section"]),
        taste_score=_score(payload, "tasteScore", "Taste"),
        appearance_score=_score(payload, "appearanceScore", "Appearance"),
        portion_qty_gm=_number(payload, "portionQtyGm"),
        temp_celsius=_number(payload, "tempCelsius"),
        taste_notes=payload.get("tasteNotes") or None,
        portion_notes=payload.get("portionNotes") or None,
        appearance_notes=payload.get("appearanceNotes") or None,
        remarks=payload.get("remarks") or None,
        corrective_action_taken=bool(payload.get("correctiveActionTaken")),
        corrective_action_notes=payload.get("correctiveActionNotes") or None,
        photos=list(payload.get("photos") or []),
        custom_fields=dict(payload.get("customFields") or {}),
        status="submitted",
    )
    db.add(qc)
    db.commit()
    log.info("quality check submitted id=%s branch=%s by=%s", qc.id, slug, principal.subject)
    return {"success": True, "id": qc.id, "message": "Quality check submitted successfully"}


def _day_start(value: str) -> datetime:
    try:
        return datetime.combine(date.fromisoformat(value[:10]), datetime.min.time())
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


def date_range(start: str, end: str) -> tuple[datetime, datetime]:
    """Half-open [start 00:00, day after end 00:00) so the end date is inclusive."""
    return _day_start(start), _day_start(end) + timedelta(days=1)


def list_checks(
    db: Session,
    principal: Principal,
    *,
    branch: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    section: Optional[str] = None,
    meal_service: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    allowed = visible_branches(db, principal)
    if allowed is not None and not allowed:
        return []

    stmt = select(QualityCheck)
    if allowed is not None:
        stmt = stmt.where(QualityCheck.branch_slug.in_(allowed))
    if branch:
        stmt = stmt.where(QualityCheck.branch_slug == branch)
    if start_date:
        stmt = stmt.where(QualityCheck.submission_date >= _day_start(start_date))
    if end_date:
        stmt = stmt.where(QualityCheck.submission_date < _day_start(end_date) + timedelta(days=1))
    if section:
        stmt = stmt.where(QualityCheck.section == section)
    if meal_service:
        stmt = stmt.where(QualityCheck.meal_service == meal_service)
    if status:
        stmt = stmt.where(QualityCheck.status == status)
    stmt = (
        stmt.order_by(QualityCheck.submission_date.desc(), QualityCheck.id.desc())
        .limit(max(int(limit), 0))
        .offset(max(int(offset), 0))
    )

    names = _branch_names(db)
    return [to_dict(qc, branch_name=names.get(qc.branch_slug)) for qc in db.scalars(stmt)]


def get_check(db: Session, principal: Principal, check_id: int) -> Dict[str, Any]:
    qc = _get(db, check_id)
    _ensure_can_view(db, principal, qc)
    branch = db.scalar(select(Branch.name).where(Branch.slug == qc.branch_slug))
    return to_dict(qc, branch_name=branch, include_email=True)


def review_check(
    db: Session,
    principal: Principal,
    check_id: int,
    *,
    status: Optional[str] = None,
    admin_notes: Optional[str] = None,
) -> Dict[str, Any]:
    qc = _get(db, check_id)
    if status is not None:
        if status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        qc.status = status
    if admin_notes is not None:
        qc.admin_notes = admin_notes
    qc.reviewed_by = principal.user_id
    qc.reviewed_at = utc_now()
    db.commit()
    log.info("quality check reviewed id=%s status=%s by=%s", qc.id, qc.status, principal.subject)
    return {"success": True, "message": "Quality check updated"}


def delete_check(db: Session, check_id: int) -> Dict[str, Any]:
    qc = _get(db, check_id)
    db.delete(qc)
    db.commit()
    log.info("quality check deleted id=%s", check_id)
    return {"success": True, "message": "Quality check deleted"}


# ------------------------------------------------------------
# Feedback
# ------------------------------------------------------------
def _is_submitter(principal: Principal, qc: QualityCheck) -> bool:
    return principal.user_id is not None and principal.user_id == qc.submitted_by


def list_feedback(db: Session, principal: Principal, check_id: int) -> Dict[str, Any]:
    qc = _get(db, check_id)
    if not (_is_submitter(principal, qc) or principal.has_any_role(FEEDBACK_ROLES)):
        raise PermissionDenied("Access denied")
    rows = db.scalars(
        select(QualityFeedback)
        .where(QualityFeedback.quality_check_id == check_id)
        .order_by(QualityFeedback.created_at.desc(), QualityFeedback.id.desc())
    )
    return {"feedback": [feedback_to_dict(fb) for fb in rows]}


def add_feedback(db: Session, principal: Principal, check_id: int, text: Optional[str]) -> Dict[str, Any]:
    if not principal.has_any_role(FEEDBACK_ROLES):
        raise PermissionDenied("Only managers can provide feedback")
    if principal.user_id is None:
        raise PermissionDenied("A user account is required to provide feedback")
    text = (text or "").strip()
    if not text:
        raise ValidationError("Feedback text is required")
    if len(text) > MAX_FEEDBACK_CHARS:
        raise ValidationError(f"Feedback text must be less than {MAX_FEEDBACK_CHARS} characters")

    qc = _get(db, check_id)
    fb = QualityFeedback(quality_check_id=qc.id, feedback_text=text, feedback_by=principal.user_id)
    db.add(fb)
    db.flush()
    notifications.notify_quality_feedback(
        db,
        submitter_id=qc.submitted_by,
        product_name=qc.product_name,
        feedback_text=text,
        author_name=principal.display_name,
        quality_check_id=qc.id,
        feedback_id=fb.id,
    )
    db.commit()
    db.refresh(fb)
    log.info("quality feedback added check=%s feedback=%s by=%s", qc.id, fb.id, principal.subject)
    return {"success": True, "feedback": feedback_to_dict(fb), "message": "Feedback sent successfully"}


def mark_feedback_read(db: Session, principal: Principal, check_id: int, feedback_id: int) -> Dict[str, Any]:
    qc = _get(db, check_id)
    if not _is_submitter(principal, qc):
        raise PermissionDenied("Only the submitter can mark feedback as read")
    fb = db.get(QualityFeedback, feedback_id)
    if fb is None or fb.quality_check_id != qc.id:
        raise NotFoundError("Feedback not found")
    if not fb.is_read:
        fb.is_read = True
        fb.read_at = utc_now()
        db.commit()
    return {"success": True, "feedback": feedback_to_dict(fb)}


def unread_feedback_count(db: Session, user_id: int) -> int:
    return int(
        db.scalar(
            select(func.count(QualityFeedback.id))
            .join(QualityCheck, QualityCheck.id == QualityFeedback.quality_check_id)
            .where(QualityCheck.submitted_by == user_id, QualityFeedback.is_read.is_(False))
        )
        or 0
    )
