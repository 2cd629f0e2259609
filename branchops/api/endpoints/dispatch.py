from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_db, require_roles, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.auth.models import Principal
from branchops.core.branches.service import branch_names
from branchops.core.dispatch import report, workflow
from branchops.core.dispatch import service as dispatches
from branchops.core.dispatch.models import DispatchStatus, WorkflowMode, mode_for
from branchops.core.dispatch.template_parser import parse_dispatch_template

log = logging.getLogger("branchops.dispatch")

router = APIRouter(prefix="/dispatch", tags=["dispatch"])

PACKING_ROLES = frozenset({"admin", "operations_lead", "dispatcher", "central_kitchen"})

_late_item_roles = require_roles("admin", "operations_lead", "dispatcher")


class ParseBody(CamelBody):
    raw_text: str = ""


class CheckBody(CamelBody):
    checked: bool = True


class IssueBody(CamelBody):
    issue: Optional[str] = None


class QuantityBody(CamelBody):
    quantity: Any = None


class NotesBody(CamelBody):
    notes: str = ""


class SaveBody(CamelBody):
    overall_notes: Optional[str] = None


class CompletePackingBody(CamelBody):
    packed_by: str = ""
    overall_notes: Optional[str] = None


class CompleteReceivingBody(CamelBody):
    received_by: str = ""
    overall_notes: Optional[str] = None


def _authorize_branch(db: Session, principal: Principal, dispatch_id: str, slug: str) -> None:
    """Branch access, plus packing actions limited to kitchen and dispatch roles."""
    dispatches.ensure_branch_access(db, principal, slug)
    bd = dispatches.get_branch_dispatch(db, dispatch_id, slug)
    status = DispatchStatus(bd.status)
    if (
        status != DispatchStatus.COMPLETED
        and mode_for(status) == WorkflowMode.PACKING
        and principal.role not in PACKING_ROLES
    ):
        raise HTTPException(status_code=403, detail="Only the central kitchen or dispatch team can pack")


# ------------------------------------------------------------
# Dispatches
# ------------------------------------------------------------
@router.get("")
def list_dispatches(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    return dispatches.list_dispatches(db, principal)


@router.post("/parse")
def parse_template(body: ParseBody, db: Session = Depends(get_db)):
    with service_errors():
        parsed = parse_dispatch_template(body.raw_text, branch_names=branch_names(db) or None)
    return {"branches": [b.to_dict() for b in parsed]}


@router.post("", status_code=201)
def create_dispatch(
    body: Dict[str, Any],
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return dispatches.create_dispatch(db, body, created_by=principal.display_name)


@router.get("/{dispatch_id}")
def get_dispatch(dispatch_id: str, principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return dispatches.get_dispatch(db, dispatch_id, principal)


@router.patch("/{dispatch_id}")
def update_branch_dispatch(
    dispatch_id: str,
    body: Dict[str, Any],
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        if body.get("branchSlug"):
            dispatches.ensure_branch_access(db, principal, body["branchSlug"])
        return dispatches.update_branch_dispatch(db, dispatch_id, body)


@router.delete("/{dispatch_id}")
def archive_dispatch(dispatch_id: str, principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return dispatches.archive_dispatch(db, dispatch_id, deleted_by=principal.display_name)


@router.post("/{dispatch_id}/late-items")
def add_late_item(
    dispatch_id: str,
    body: Dict[str, Any],
    principal: Principal = Depends(_late_item_roles),
    db: Session = Depends(get_db),
):
    with service_errors():
        try:
            return dispatches.add_late_item(db, dispatch_id, body, added_by=principal.display_name)
        except dispatches.LateItemRejected as exc:
            raise HTTPException(
                status_code=400,
                detail={"error": exc.message, "skippedBranches": exc.skipped},
            ) from exc


@router.get("/{dispatch_id}/report")
def dispatch_report(
    dispatch_id: str,
    issue_type: str = Query("all", alias="issueType"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return report.build_report(dispatches.get_dispatch(db, dispatch_id, principal), issue_type=issue_type)


@router.get("/{dispatch_id}/export.csv")
def export_csv(
    dispatch_id: str,
    complete: bool = False,
    issue_type: str = Query("all", alias="issueType"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        doc = dispatches.get_dispatch(db, dispatch_id, principal)
        body = report.to_csv(doc, complete=complete, issue_type=issue_type)
    filename = report.csv_filename(doc, complete=complete)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ------------------------------------------------------------
# Packing / receiving workflow
# ------------------------------------------------------------
@router.post("/{dispatch_id}/branches/{slug}/items/{item_id}/check")
def check_item(
    dispatch_id: str,
    slug: str,
    item_id: str,
    body: CheckBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.check_item(db, dispatch_id, slug, item_id, checked=body.checked)


@router.post("/{dispatch_id}/branches/{slug}/items/{item_id}/issue")
def set_issue(
    dispatch_id: str,
    slug: str,
    item_id: str,
    body: IssueBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.set_issue(db, dispatch_id, slug, item_id, issue=body.issue or None)


@router.post("/{dispatch_id}/branches/{slug}/items/{item_id}/quantity")
def set_quantity(
    dispatch_id: str,
    slug: str,
    item_id: str,
    body: QuantityBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.set_quantity(db, dispatch_id, slug, item_id, quantity=body.quantity)


@router.post("/{dispatch_id}/branches/{slug}/items/{item_id}/notes")
def set_notes(
    dispatch_id: str,
    slug: str,
    item_id: str,
    body: NotesBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.set_notes(db, dispatch_id, slug, item_id, notes=body.notes)


@router.post("/{dispatch_id}/branches/{slug}/save")
def save_progress(
    dispatch_id: str,
    slug: str,
    body: SaveBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.save_progress(db, dispatch_id, slug, overall_notes=body.overall_notes)


@router.post("/{dispatch_id}/branches/{slug}/complete-packing")
def complete_packing(
    dispatch_id: str,
    slug: str,
    body: CompletePackingBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.complete_packing(
            db,
            dispatch_id,
            slug,
            packed_by=body.packed_by,
            overall_notes=body.overall_notes,
        )


@router.post("/{dispatch_id}/branches/{slug}/complete-receiving")
def complete_receiving(
    dispatch_id: str,
    slug: str,
    body: CompleteReceivingBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        _authorize_branch(db, principal, dispatch_id, slug)
        return workflow.complete_receiving(
            db,
            dispatch_id,
            slug,
            received_by=body.received_by,
            overall_notes=body.overall_notes,
        )
