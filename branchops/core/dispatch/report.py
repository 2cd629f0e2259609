from __future__ import annotations

import csv
import io
from typing import Any, Dict, List, Optional

from branchops.core.dispatch.models import DispatchStatus, ItemIssue
from branchops.core.errors import ValidationError

ISSUE_CSV_HEADER = [
    "Branch Name", "Item Name", "Ordered Qty", "Packed Qty", "Received Qty", "Still to Send",
    "Unit", "Issue Type", "Notes", "Status", "Packed By", "Received By",
]
COMPLETE_CSV_HEADER = [
    "Branch Name", "Item Name", "Ordered Qty", "Packed Qty", "Received Qty", "Still to Send",
    "Unit", "Issue Type", "Notes", "Packed Checked", "Received Checked", "Status",
    "Packed By", "Received By", "Received At",
]


def _matches(item: Dict[str, Any], issue_type: str) -> bool:
    if issue_type == "all":
        return item.get("issue") is not None
    return item.get("issue") == issue_type


def still_to_send(item: Dict[str, Any]) -> float:
    return (item.get("orderedQty") or 0) - (item.get("receivedQty") or 0)


def build_report(dispatch: Dict[str, Any], *, issue_type: str = "all") -> Dict[str, Any]:
    """Summary counters plus the branches that have issues of ``issue_type``."""
    if issue_type != "all" and issue_type not in {i.value for i in ItemIssue}:
        raise ValidationError(f"Unknown issue type: {issue_type}")

    branches = dispatch.get("branchDispatches") or []
    all_items = [i for bd in branches for i in bd.get("items") or []]
    with_issue = [i for i in all_items if i.get("issue") is not None]

    issues_by_branch: List[Dict[str, Any]] = []
    for bd in branches:
        items = [
            {**i, "stillToSend": still_to_send(i)}
            for i in bd.get("items") or []
            if _matches(i, issue_type)
        ]
        if items:
            issues_by_branch.append(
                {
                    "branchSlug": bd["branchSlug"],
                    "branchName": bd["branchName"],
                    "status": bd["status"],
                    "items": items,
                }
            )

    return {
        "dispatchId": dispatch.get("id"),
        "deliveryDate": dispatch.get("deliveryDate"),
        "totals": {
            "branches": len(branches),
            "completed": sum(1 for bd in branches if bd["status"] == DispatchStatus.COMPLETED.value),
            "pending": sum(1 for bd in branches if bd["status"] == DispatchStatus.PENDING.value),
            "inProgress": sum(1 for bd in branches if bd["status"] == DispatchStatus.RECEIVING.value),
            "items": len(all_items),
        },
        "issues": {
            "total": len(with_issue),
            **{kind.value: sum(1 for i in with_issue if i["issue"] == kind.value) for kind in ItemIssue},
        },
        "branchesWithIssues": sum(
            1 for bd in branches if any(i.get("issue") is not None for i in bd.get("items") or [])
        ),
        "issuesByBranch": issues_by_branch,
    }


def _num(value: Optional[float]) -> str:
    if value is None:
        return "0"
    return str(int(value)) if float(value).is_integer() else str(value)


def to_csv(dispatch: Dict[str, Any], *, complete: bool = False, issue_type: str = "all") -> str:
    """Issue-only export by default; ``complete`` exports every item."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(COMPLETE_CSV_HEADER if complete else ISSUE_CSV_HEADER)

    for bd in dispatch.get("branchDispatches") or []:
        for item in bd.get("items") or []:
            if not complete and not _matches(item, issue_type):
                continue
            packed = item.get("packedQty")
            common = [
                bd["branchName"],
                item["name"],
                _num(item.get("orderedQty")),
                _num(packed if packed is not None else item.get("orderedQty")),
                _num(item.get("receivedQty") or 0),
                _num(still_to_send(item)),
                item.get("unit") or "",
                item.get("issue") or "none",
                item.get("notes") or "",
            ]
            if complete:
                row = common + [
                    str(bool(item.get("packedChecked"))).lower(),
                    str(bool(item.get("receivedChecked"))).lower(),
                    bd["status"],
                    bd.get("packedBy") or "",
                    bd.get("receivedBy") or "",
                    bd.get("receivedAt") or "",
                ]
            else:
                row = common + [bd["status"], bd.get("packedBy") or "", bd.get("receivedBy") or ""]
            writer.writerow(row)
    return buf.getvalue()


def csv_filename(dispatch: Dict[str, Any], *, complete: bool = False) -> str:
    prefix = "dispatch-complete-details" if complete else "dispatch-report"
    return f"{prefix}-{dispatch.get('deliveryDate')}.csv"
