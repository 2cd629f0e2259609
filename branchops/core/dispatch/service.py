from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from branchops.core.auth.models import Principal
from branchops.core.auth.roles import UserRole
from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import BranchDispatch, Dispatch, DispatchItem
from branchops.core.dispatch.models import (
    LATE_ITEM_STATUSES,
    AddLateItemRequest,
    CreateDispatchRequest,
    DispatchStatus,
    ItemIssue,
)
from branchops.core.dispatch.state_machine import allowed_next, ensure_transition
from branchops.core.errors import NotFoundError, PermissionDenied, ValidationError
from branchops.core.observability.metrics import DISPATCH_TRANSITIONS_TOTAL
from branchops.core.users.service import branches_for

log = logging.getLogger("branchops.dispatch")

DEFAULT_CREATED_BY = "Head Office"

_TIMESTAMP_FIELDS = {
    "packingStartedAt": "packing_started_at",
    "packingCompletedAt": "packing_completed_at",
    "receivingStartedAt": "receiving_started_at",
    "receivedAt": "received_at",
    "completedAt": "completed_at",
}
_TEXT_FIELDS = {
    "packedBy": "packed_by",
    "receivedBy": "received_by",
    "overallNotes": "overall_notes",
    "branchName": "branch_name",
}


# ------------------------------------------------------------
# Serialisation
# ------------------------------------------------------------
def item_to_dict(item: DispatchItem) -> Dict[str, Any]:
    out = {
        "id": item.item_id,
        "name": item.name,
        "orderedQty": item.ordered_qty,
        "packedQty": item.packed_qty,
        "receivedQty": item.received_qty,
        "unit": item.unit,
        "packedChecked": bool(item.packed_checked),
        "receivedChecked": bool(item.received_checked),
        "notes": item.notes or "",
        "issue": item.issue,
    }
    if item.added_late:
        out.update(
            {
                "addedLate": True,
                "addedAt": iso(item.added_at),
                "addedBy": item.added_by,
                "addedReason": item.added_reason,
            }
        )
    return out


def branch_dispatch_to_dict(bd: BranchDispatch) -> Dict[str, Any]:
    return {
        "branchSlug": bd.branch_slug,
        "branchName": bd.branch_name,
        "status": bd.status,
        "allowedNextStatuses": allowed_next(DispatchStatus(bd.status)),
        "items": [item_to_dict(i) for i in bd.items],
        "packedBy": bd.packed_by,
        "packingStartedAt": iso(bd.packing_started_at),
        "packingCompletedAt": iso(bd.packing_completed_at),
        "receivedBy": bd.received_by,
        "receivingStartedAt": iso(bd.receiving_started_at),
        "receivedAt": iso(bd.received_at),
        "completedAt": iso(bd.completed_at),
        "overallNotes": bd.overall_notes or "",
    }


def to_dict(dispatch: Dispatch, *, only_branches: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    allowed = set(only_branches) if only_branches is not None else None
    return {
        "id": dispatch.id,
        "createdDate": iso(dispatch.created_date),
        "deliveryDate": dispatch.delivery_date.isoformat(),
        "createdBy": dispatch.created_by,
        "branchDispatches": [
            branch_dispatch_to_dict(bd)
            for bd in dispatch.branch_dispatches
            if allowed is None or bd.branch_slug in allowed
        ],
    }


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string (``Z`` or offset allowed) -> naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip().replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value}") from exc
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# ------------------------------------------------------------
# Access
# ------------------------------------------------------------
def visible_branches(db: Session, principal: Principal) -> Optional[List[str]]:
    """Branch slugs whose dispatches the principal may see; None means all.

    The central kitchen packs for every branch, so it is unrestricted here.
    """
    if principal.role == UserRole.CENTRAL_KITCHEN.value:
        return None
    return branches_for(db, principal)


def ensure_branch_access(db: Session, principal: Principal, branch_slug: str) -> None:
    allowed = visible_branches(db, principal)
    if allowed is not None and branch_slug not in allowed:
        raise PermissionDenied("You do not have access to this branch")


# ------------------------------------------------------------
# Queries
# ------------------------------------------------------------
def _get(db: Session, dispatch_id: str) -> Dispatch:
    dispatch = db.scalar(
        select(Dispatch)
        .options(selectinload(Dispatch.branch_dispatches).selectinload(BranchDispatch.items))
        .where(Dispatch.id == dispatch_id, Dispatch.is_archived.is_(False))
    )
    if dispatch is None:
        raise NotFoundError("Dispatch not found")
    return dispatch


def get_branch_dispatch(db: Session, dispatch_id: str, branch_slug: str) -> BranchDispatch:
    dispatch = _get(db, dispatch_id)
    for bd in dispatch.branch_dispatches:
        if bd.branch_slug == branch_slug:
            return bd
    raise NotFoundError("Branch dispatch not found")


def list_dispatches(db: Session, principal: Principal) -> List[Dict[str, Any]]:
    allowed = visible_branches(db, principal)
    rows = db.scalars(
        select(Dispatch)
        .options(selectinload(Dispatch.branch_dispatches).selectinload(BranchDispatch.items))
        .where(Dispatch.is_archived.is_(False))
        .order_by(Dispatch.delivery_date.desc(), Dispatch.created_date.desc())
    )
    out = []
    for dispatch in rows:
        doc = to_dict(dispatch, only_branches=allowed)
        if allowed is not None and not doc["branchDispatches"]:
            continue
        out.append(doc)
    return out


def get_dispatch(db: Session, dispatch_id: str, principal: Principal) -> Dict[str, Any]:
    dispatch = _get(db, dispatch_id)
    allowed = visible_branches(db, principal)
    doc = to_dict(dispatch, only_branches=allowed)
    if allowed is not None and not doc["branchDispatches"]:
        raise NotFoundError("Dispatch not found")
    return doc


# ------------------------------------------------------------
# Commands
# ------------------------------------------------------------
def _new_dispatch_id(delivery: date) -> str:
    return f"dispatch-{delivery.isoformat()}-{int(time.time() * 1000)}"


def create_dispatch(db: Session, payload: Dict[str, Any], *, created_by: Optional[str] = None) -> Dict[str, Any]:
    """Create a dispatch from parsed template branches; every branch starts pending."""
    req = CreateDispatchRequest.model_validate(payload or {})
    branches = req.branch_dispatches or req.branches
    if not branches:
        raise ValidationError("At least one branch is required")

    try:
        delivery = date.fromisoformat(req.delivery_date[:10]) if req.delivery_date else utc_now().date()
    except ValueError as exc:
        raise ValidationError("Invalid deliveryDate") from exc
    dispatch = Dispatch(
        id=req.id or _new_dispatch_id(delivery),
        created_date=utc_now(),
        delivery_date=delivery,
        created_by=req.created_by or created_by or DEFAULT_CREATED_BY,
        is_archived=False,
    )
    if db.get(Dispatch, dispatch.id) is not None:
        raise ValidationError("Dispatch ID already exists")

    seen = set()
    for pos, b in enumerate(branches):
        if b.branch_slug in seen:
            raise ValidationError(f"Duplicate branch in dispatch: {b.branch_slug}")
        seen.add(b.branch_slug)
        bd = BranchDispatch(
            position=pos,
            branch_slug=b.branch_slug,
            branch_name=b.branch_name or b.branch_slug,
            status=DispatchStatus.PENDING.value,
            overall_notes="",
        )
        for n, it in enumerate(b.items):
            bd.items.append(
                DispatchItem(
                    item_id=it.id or f"{b.branch_slug}-item-{n}",
                    position=n,
                    name=it.name,
                    ordered_qty=it.ordered_qty or it.quantity or 0,
                    unit=it.unit,
                    notes=it.notes,
                )
            )
        dispatch.branch_dispatches.append(bd)

    db.add(dispatch)
    db.commit()
    log.info(
        "dispatch created id=%s delivery=%s branches=%d",
        dispatch.id,
        delivery.isoformat(),
        len(dispatch.branch_dispatches),
    )
    return {"success": True, "id": dispatch.id}


def transition(bd: BranchDispatch, dst: DispatchStatus) -> None:
    src = DispatchStatus(bd.status)
    ensure_transition(src, dst)
    if src != dst:
        DISPATCH_TRANSITIONS_TOTAL.labels(src=src.value, dst=dst.value).inc()
        log.info(
            "dispatch transition id=%s branch=%s %s -> %s",
            bd.dispatch_id,
            bd.branch_slug,
            src.value,
            dst.value,
        )
    bd.status = dst.value


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid quantity: {value}") from exc


def _replace_items(bd: BranchDispatch, items: List[Dict[str, Any]]) -> None:
    existing = {i.item_id: i for i in bd.items}
    new_rows = []
    for pos, raw in enumerate(items):
        if not raw.get("name") and raw.get("id") not in existing:
            raise ValidationError("Item name is required")
        row = existing.get(raw.get("id")) or DispatchItem(item_id=raw.get("id") or f"{bd.branch_slug}-item-{pos}")
        row.position = pos
        row.name = raw.get("name", row.name)
        row.ordered_qty = _opt_float(raw.get("orderedQty", row.ordered_qty)) or 0.0
        row.packed_qty = _opt_float(raw.get("packedQty", row.packed_qty))
        row.received_qty = _opt_float(raw.get("receivedQty", row.received_qty))
        row.unit = raw.get("unit") or row.unit or "KG"
        row.packed_checked = bool(raw.get("packedChecked", row.packed_checked))
        row.received_checked = bool(raw.get("receivedChecked", row.received_checked))
        row.notes = raw.get("notes") or ""
        issue = raw.get("issue", row.issue)
        if issue is not None and issue not in {i.value for i in ItemIssue}:
            raise ValidationError(f"Invalid issue: {issue}")
        row.issue = issue
        new_rows.append(row)
    bd.items = new_rows


def update_branch_dispatch(db: Session, dispatch_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge fields into one branch dispatch, selected by ``branchSlug`` in the body."""
    updates = dict(updates or {})
    slug = updates.get("branchSlug")
    if not slug:
        raise ValidationError("branchSlug is required")
    bd = get_branch_dispatch(db, dispatch_id, slug)

    if "status" in updates and updates["status"]:
        try:
            dst = DispatchStatus(updates["status"])
        except ValueError as exc:
            raise ValidationError(f"Invalid status: {updates['status']}") from exc
        transition(bd, dst)

    for key, attr in _TEXT_FIELDS.items():
        if key in updates:
            setattr(bd, attr, updates[key] or ("" if attr == "overall_notes" else None))
    for key, attr in _TIMESTAMP_FIELDS.items():
        if key in updates:
            setattr(bd, attr, parse_timestamp(updates[key]))
    if "items" in updates and updates["items"] is not None:
        _replace_items(bd, list(updates["items"]))

    db.commit()
    return {"success": True, "branchDispatch": branch_dispatch_to_dict(bd)}


def archive_dispatch(db: Session, dispatch_id: str, *, deleted_by: str = "Admin") -> Dict[str, Any]:
    dispatch = db.scalar(select(Dispatch).where(Dispatch.id == dispatch_id, Dispatch.is_archived.is_(False)))
    if dispatch is None:
        raise NotFoundError("Dispatch not found")
    dispatch.is_archived = True
    dispatch.deleted_at = utc_now()
    dispatch.deleted_by = deleted_by
    db.commit()
    log.info("dispatch archived id=%s by=%s", dispatch_id, deleted_by)
    return {"success": True, "message": "Dispatch archived successfully", "archivedId": dispatch_id}


def _late_item_id(slug: str) -> str:
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(5))
    return f"{slug}-late-{int(time.time() * 1000)}-{suffix}"


def add_late_item(db: Session, dispatch_id: str, payload: Dict[str, Any], *, added_by: str) -> Dict[str, Any]:
    req = AddLateItemRequest.model_validate(payload or {})
    if not req.item_name.strip():
        raise ValidationError("Item name is required")
    if not req.unit.strip():
        raise ValidationError("Unit is required")
    if not req.branches:
        raise ValidationError("At least one branch must be selected")
    if any(b.quantity <= 0 for b in req.branches):
        raise ValidationError("All quantities must be greater than 0")

    dispatch = _get(db, dispatch_id)
    by_slug = {bd.branch_slug: bd for bd in dispatch.branch_dispatches}
    updated: List[str] = []
    skipped: List[str] = []
    now = utc_now()

    for target in req.branches:
        bd = by_slug.get(target.branch_slug)
        if bd is None:
            skipped.append(target.branch_slug)
            continue
        if DispatchStatus(bd.status) not in LATE_ITEM_STATUSES:
            skipped.append(bd.branch_name)
            continue
        bd.items.append(
            DispatchItem(
                item_id=_late_item_id(target.branch_slug),
                position=len(bd.items),
                name=req.item_name.strip(),
                ordered_qty=target.quantity,
                unit=req.unit,
                notes="",
                added_late=True,
                added_at=now,
                added_by=added_by or "Unknown",
                added_reason=(req.reason or "").strip() or None,
            )
        )
        updated.append(bd.branch_name)

    if not updated:
        db.rollback()
        raise LateItemRejected(skipped)

    db.commit()
    log.info("late item added dispatch=%s item=%s branches=%d", dispatch_id, req.item_name, len(updated))
    return {
        "success": True,
        "message": f"Item added to {len(updated)} branch(es)",
        "updatedBranches": updated,
        "skippedBranches": skipped,
    }


class LateItemRejected(ValidationError):
    def __init__(self, skipped: List[str]):
        super().__init__("Could not add item to any branches. They may already be dispatched or completed.")
        self.skipped = skipped
