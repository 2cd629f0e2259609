"""Role landing page plus the counters each role's dashboard shows."""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from branchops.core.auth.models import Principal
from branchops.core.auth.roles import BRANCH_SCOPED_ROLES, ROLE_INFO, UserRole, UserStatus, landing_page_for
from branchops.core.db.base import utc_now
from branchops.core.db.models import BranchDispatch, Dispatch, QualityCheck, User
from branchops.core.dispatch.models import DispatchStatus
from branchops.core.production.service import items_for_day
from branchops.core.quality import service as quality
from branchops.core.users.service import branches_for

RECENT_QUALITY_LIMIT = 5


def _active_branch_dispatches(*columns):
    return (
        select(*columns)
        .select_from(BranchDispatch)
        .join(Dispatch, Dispatch.id == BranchDispatch.dispatch_id)
        .where(Dispatch.is_archived.is_(False))
    )


def dispatch_status_counts(db: Session) -> Dict[str, int]:
    counts = Counter(db.scalars(_active_branch_dispatches(BranchDispatch.status)))
    return {s.value: counts.get(s.value, 0) for s in DispatchStatus}


def _active_dispatch_count(db: Session) -> int:
    open_statuses = [s.value for s in DispatchStatus if s != DispatchStatus.COMPLETED]
    return int(
        db.scalar(
            select(func.count(func.distinct(BranchDispatch.dispatch_id)))
            .select_from(BranchDispatch)
            .join(Dispatch, Dispatch.id == BranchDispatch.dispatch_id)
            .where(Dispatch.is_archived.is_(False), BranchDispatch.status.in_(open_statuses))
        )
        or 0
    )


def _quality_since(db: Session, since: date) -> int:
    start = quality.date_range(since.isoformat(), since.isoformat())[0]
    return int(db.scalar(select(func.count(QualityCheck.id)).where(QualityCheck.submission_date >= start)) or 0)


def _admin(db: Session, today: date) -> Dict[str, Any]:
    pending = db.scalar(select(func.count(User.id)).where(User.status == UserStatus.PENDING.value)) or 0
    return {
        "pendingUsers": int(pending),
        "activeDispatches": _active_dispatch_count(db),
        "qualityChecksThisWeek": _quality_since(db, today - timedelta(days=today.weekday())),
        "dispatchStatus": dispatch_status_counts(db),
    }


def _operations(db: Session) -> Dict[str, Any]:
    return {
        "activeDispatches": _active_dispatch_count(db),
        "dispatchStatus": dispatch_status_counts(db),
    }


def _central_kitchen(db: Session, today: date) -> Dict[str, Any]:
    items = items_for_day(db, today)
    packing = db.scalar(
        _active_branch_dispatches(func.count(BranchDispatch.id))
        .where(BranchDispatch.status.in_([DispatchStatus.PENDING.value, DispatchStatus.PACKING.value]))
    )
    return {
        "todayProductionItems": len(items),
        "todayProductionCompleted": sum(1 for i in items if i.get("completed")),
        "dispatchesToPack": int(packing or 0),
    }


def _branch(db: Session, principal: Principal) -> Dict[str, Any]:
    slugs = branches_for(db, principal) or []
    pending_receipts = 0
    if slugs:
        pending_receipts = db.scalar(
            _active_branch_dispatches(func.count(BranchDispatch.id))
            .where(
                BranchDispatch.branch_slug.in_(slugs),
                BranchDispatch.status.in_([DispatchStatus.DISPATCHED.value, DispatchStatus.RECEIVING.value]),
            )
        )
    recent = quality.list_checks(db, principal, limit=RECENT_QUALITY_LIMIT)
    out: Dict[str, Any] = {
        "branches": slugs,
        "pendingReceipts": int(pending_receipts or 0),
        "recentQualityChecks": recent,
    }
    if principal.user_id is not None:
        out["unreadFeedback"] = quality.unread_feedback_count(db, principal.user_id)
    return out


def dashboard_for(db: Session, principal: Principal, *, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or utc_now().date()
    role = principal.role
    if role == UserRole.ADMIN.value:
        stats = _admin(db, today)
    elif role in (UserRole.OPERATIONS_LEAD.value, UserRole.DISPATCHER.value):
        stats = _operations(db)
    elif role == UserRole.CENTRAL_KITCHEN.value:
        stats = _central_kitchen(db, today)
    elif role in BRANCH_SCOPED_ROLES:
        stats = _branch(db, principal)
    else:
        stats = {}

    info = ROLE_INFO.get(role)
    return {
        "role": role,
        "roleName": info.display_name if info else None,
        "landingPage": landing_page_for(role),
        "user": {"id": principal.user_id, "name": principal.display_name, "email": principal.email},
        "stats": stats,
    }
