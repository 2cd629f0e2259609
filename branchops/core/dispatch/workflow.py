"""Per-item packing and receiving actions on one branch dispatch.

The workflow mode follows the branch status: pending/packing branches are
being packed by the central kitchen, dispatched/receiving branches are being
checked in by the branch. Completed branches are read-only.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from branchops.core.db.base import utc_now
from branchops.core.db.models import BranchDispatch, DispatchItem
from branchops.core.dispatch.models import DispatchStatus, ItemIssue, WorkflowMode, mode_for
from branchops.core.dispatch.service import branch_dispatch_to_dict, get_branch_dispatch, transition
from branchops.core.errors import NotFoundError, ValidationError

log = logging.getLogger("branchops.dispatch")


def _load(db: Session, dispatch_id: str, branch_slug: str) -> tuple[BranchDispatch, WorkflowMode]:
    bd = get_branch_dispatch(db, dispatch_id, branch_slug)
    status = DispatchStatus(bd.status)
    if status == DispatchStatus.COMPLETED:
        raise ValidationError("Dispatch already completed")
    return bd, mode_for(status)


def _item(bd: BranchDispatch, item_id: str) -> DispatchItem:
    for item in bd.items:
        if item.item_id == item_id:
            return item
    raise NotFoundError("Item not found")


def _result(bd: BranchDispatch, mode: WorkflowMode) -> Dict[str, Any]:
    if mode == WorkflowMode.PACKING:
        unchecked = sum(1 for i in bd.items if not i.packed_checked)
    else:
        unchecked = sum(1 for i in bd.items if not i.received_checked and i.issue is None)
    return {
        "mode": mode.value,
        "uncheckedItems": unchecked,
        "issuesCount": sum(1 for i in bd.items if i.issue is not None),
        "branchDispatch": branch_dispatch_to_dict(bd),
    }


def check_item(db: Session, dispatch_id: str, branch_slug: str, item_id: str, *, checked: bool) -> Dict[str, Any]:
    bd, mode = _load(db, dispatch_id, branch_slug)
    item = _item(bd, item_id)
    if mode == WorkflowMode.PACKING:
        item.packed_checked = checked
        item.packed_qty = item.ordered_qty if checked else None
    else:
        item.received_checked = checked
        item.received_qty = (item.packed_qty or item.ordered_qty) if checked else None
    if checked:
        item.issue = None
    db.commit()
    return _result(bd, mode)


def set_issue(
    db: Session,
    dispatch_id: str,
    branch_slug: str,
    item_id: str,
    *,
    issue: Optional[str],
) -> Dict[str, Any]:
    """``None`` clears the issue and checks the item at full quantity.

    ``missing`` zeroes the quantity; other issues leave it blank for manual entry.
    """
    if issue is not None:
        try:
            issue = ItemIssue(issue).value
        except ValueError as exc:
            raise ValidationError(f"Invalid issue: {issue}") from exc

    bd, mode = _load(db, dispatch_id, branch_slug)
    item = _item(bd, item_id)
    item.issue = issue
    if issue is None:
        qty = item.ordered_qty
    elif issue == ItemIssue.MISSING.value:
        qty = 0
    else:
        qty = None

    if mode == WorkflowMode.PACKING:
        item.packed_checked = issue is None
        item.packed_qty = qty
    else:
        item.received_checked = issue is None
        item.received_qty = qty
    db.commit()
    return _result(bd, mode)


def set_quantity(db: Session, dispatch_id: str, branch_slug: str, item_id: str, *, quantity: Any) -> Dict[str, Any]:
    try:
        qty = float(quantity or 0)
    except (TypeError, ValueError):
        qty = 0.0
    if qty < 0:
        raise ValidationError("Quantity cannot be negative")

    bd, mode = _load(db, dispatch_id, branch_slug)
    item = _item(bd, item_id)
    if mode == WorkflowMode.PACKING:
        item.packed_qty = qty
    else:
        item.received_qty = qty
    db.commit()
    return _result(bd, mode)


def set_notes(db: Session, dispatch_id: str, branch_slug: str, item_id: str, *, notes: str) -> Dict[str, Any]:
    bd, mode = _load(db, dispatch_id, branch_slug)
    _item(bd, item_id).notes = notes or ""
    db.commit()
    return _result(bd, mode)


def save_progress(
    db: Session,
    dispatch_id: str,
    branch_slug: str,
    *,
    overall_notes: Optional[str] = None,
) -> Dict[str, Any]:
    bd, mode = _load(db, dispatch_id, branch_slug)
    now = utc_now()
    if mode == WorkflowMode.PACKING:
        transition(bd, DispatchStatus.PACKING)
        bd.packing_started_at = bd.packing_started_at or now
    else:
        transition(bd, DispatchStatus.RECEIVING)
        bd.receiving_started_at = bd.receiving_started_at or now
    if overall_notes is not None:
        bd.overall_notes = overall_notes
    db.commit()
    return _result(bd, mode)


def complete_packing(
    db: Session,
    dispatch_id: str,
    branch_slug: str,
    *,
    packed_by: str,
    overall_notes: Optional[str] = None,
) -> Dict[str, Any]:
    if not (packed_by or "").strip():
        raise ValidationError("Please enter the name of the person packing this dispatch")
    bd, mode = _load(db, dispatch_id, branch_slug)
    if mode != WorkflowMode.PACKING:
        raise ValidationError("Packing is already complete for this branch")

    now = utc_now()
    transition(bd, DispatchStatus.DISPATCHED)
    bd.packed_by = packed_by.strip()
    bd.packing_started_at = bd.packing_started_at or now
    bd.packing_completed_at = now
    if overall_notes is not None:
        bd.overall_notes = overall_notes
    db.commit()
    log.info("packing completed dispatch=%s branch=%s by=%s", dispatch_id, branch_slug, bd.packed_by)
    return _result(bd, WorkflowMode.PACKING)


def complete_receiving(
    db: Session,
    dispatch_id: str,
    branch_slug: str,
    *,
    received_by: str,
    overall_notes: Optional[str] = None,
) -> Dict[str, Any]:
    if not (received_by or "").strip():
        raise ValidationError("Please enter the name of the person receiving this dispatch")
    bd, mode = _load(db, dispatch_id, branch_slug)
    if mode != WorkflowMode.RECEIVING:
        raise ValidationError("This branch dispatch has not been dispatched yet")

    now = utc_now()
    transition(bd, DispatchStatus.COMPLETED)
    bd.received_by = received_by.strip()
    bd.receiving_started_at = bd.receiving_started_at or now
    bd.received_at = now
    bd.completed_at = now
    if overall_notes is not None:
        bd.overall_notes = overall_notes
    db.commit()
    log.info("receiving completed dispatch=%s branch=%s by=%s", dispatch_id, branch_slug, bd.received_by)
    return _result(bd, WorkflowMode.RECEIVING)
