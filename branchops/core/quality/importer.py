"""Bulk import of quality checks from an Excel workbook.

The first worksheet is read with its first row as headers. Headers are mapped
to fields by keyword; every data row is validated independently and reported
back with its spreadsheet row number.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.auth.models import Principal
from branchops.core.db.base import utc_now
from branchops.core.db.models import Branch, QualityCheck
from branchops.core.errors import PermissionDenied, ValidationError
from branchops.core.observability.metrics import inc_import
from branchops.core.tabular import leading_float, leading_int, parse_excel_date, read_first_sheet, safe_str

log = logging.getLogger("branchops.quality")

DEFAULT_PORTION_GM = 100.0

# field -> keywords, checked in this order
COLUMN_PATTERNS: Dict[str, List[str]] = {
    "branch": ["branch", "location", "site", "store"],
    "date": ["date", "submission", "submitted", "time", "timestamp"],
    "productName": ["product name", "product", "item", "food", "dish"],
    "section": ["section", "category", "type", "item type", "department"],
    "tasteScore": ["taste score", "taste", "flavor score", "flavor"],
    "tasteNotes": ["taste note", "taste comment", "flavor note"],
    "appearanceScore": ["appearance score", "appearance", "look score", "visual score"],
    "appearanceNotes": ["appearance note", "appearance comment", "look note"],
    "portionQtyGm": ["portion qty in gm", "portion qty", "portion", "weight", "qty", "gram", "gm", "quantity"],
    "portionNotes": ["portion note", "portion comment", "weight note"],
    "tempCelsius": ["temp score in c", "temp score", "temp", "temperature", "celsius", "°c", "deg"],
    "mealService": ["meal", "service", "meal service"],
    "remarks": ["remark", "comment", "observation"],
    "correctiveAction": ["corrective action required", "corrective", "action required"],
    "correctiveActionNotes": ["corrective note", "action note"],
}

EXACT_MATCH_SCORE = 100
TRUTHY = (True, "TRUE", "Yes", "1", 1)

_SEPARATORS = re.compile(r"[_\s-]+")


def detect_column_mapping(headers: Sequence[str]) -> Dict[str, str]:
    """Assign each field its best header.

    An exact keyword match wins outright; otherwise the longest contained
    keyword wins. A header is assigned to at most one field.
    """
    mapping: Dict[str, str] = {}
    used: set = set()
    for field, keywords in COLUMN_PATTERNS.items():
        best: Optional[str] = None
        best_score = 0
        for header in headers:
            if header in used:
                continue
            lowered = header.lower().strip()
            for keyword in keywords:
                if lowered == keyword:
                    best, best_score = header, EXACT_MATCH_SCORE
                    break
                if keyword in lowered and len(keyword) > best_score:
                    best, best_score = header, len(keyword)
            if best_score == EXACT_MATCH_SCORE:
                break
        if best is not None:
            mapping[field] = best
            used.add(best)
    return mapping


def _words(text: str) -> List[str]:
    return [w for w in _SEPARATORS.split(text.lower()) if w]


def match_branch_slug(name: Any, branches: Sequence[Mapping[str, str]]) -> Optional[str]:
    """Exact slug or name first, then any shared word longer than two characters."""
    raw = safe_str(name)
    if not raw:
        return None
    normalized = _SEPARATORS.sub("-", raw.lower())
    for b in branches:
        if b["slug"] == normalized or b["name"].lower() == raw.lower():
            return b["slug"]

    excel_words = [w for w in _words(raw) if len(w) > 2]
    for b in branches:
        branch_words = _words(b["name"])
        if any(bw in w or w in bw for w in excel_words for bw in branch_words):
            return b["slug"]
    return None


def normalize_section(value: Any) -> str:
    text = safe_str(value).lower()
    if "hot" in text:
        return "Hot"
    if "cold" in text:
        return "Cold"
    if "bake" in text:
        return "Bakery"
    if "beverage" in text or "drink" in text:
        return "Beverages"
    return "Hot"


def normalize_meal_service(value: Any) -> str:
    return "breakfast" if "breakfast" in safe_str(value).lower() else "lunch"


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(row: Mapping[str, Any], column: Optional[str]) -> Optional[str]:
    value = row.get(column) if column else None
    return safe_str(value) or None


def _score(row: Mapping[str, Any], column: Optional[str], label: str, headers: Sequence[str]) -> int:
    if not column:
        preview = ", ".join(headers[:5])
        raise ValueError(f"{label} Score column not found in Excel. Available columns: {preview}...")
    raw = row.get(column)
    if _blank(raw):
        raise ValueError(f'{label} score is empty (column: "{column}"). Must be 1-5')
    score = leading_int(raw)
    if score is None or score < 1 or score > 5:
        raise ValueError(f'Invalid {label.lower()} score value "{raw}" (column: "{column}"). Must be a number 1-5')
    return score


def _build_check(
    row: Mapping[str, Any],
    mapping: Mapping[str, str],
    headers: Sequence[str],
    branches: Sequence[Mapping[str, str]],
    warnings: List[Dict[str, Any]],
    row_number: int,
    submitted_by: int,
) -> QualityCheck:
    branch_name = row.get(mapping.get("branch")) if mapping.get("branch") else None
    slug = match_branch_slug(branch_name, branches)
    if not slug:
        raise ValueError(f'Branch "{safe_str(branch_name)}" not found or could not be matched')

    date_value = row.get(mapping["date"]) if "date" in mapping else None
    submitted_at = parse_excel_date(date_value)
    if submitted_at is None:
        warnings.append({"row": row_number, "message": f'Invalid date "{safe_str(date_value)}", using current date'})
        submitted_at = utc_now()

    product = _text(row, mapping.get("productName"))
    if not product:
        raise ValueError("Product name is required")

    taste = _score(row, mapping.get("tasteScore"), "Taste", headers)
    appearance = _score(row, mapping.get("appearanceScore"), "Appearance", headers)

    portion_raw = row.get(mapping["portionQtyGm"]) if "portionQtyGm" in mapping else None
    portion = leading_float(portion_raw) if not _blank(portion_raw) else None
    if not portion or portion <= 0:
        warnings.append(
            {
                "row": row_number,
                "message": f'Invalid/missing portion quantity "{safe_str(portion_raw)}", using default 100g',
            }
        )
        portion = DEFAULT_PORTION_GM

    temp_raw = row.get(mapping["tempCelsius"]) if "tempCelsius" in mapping else None
    temp = leading_float(temp_raw) if not _blank(temp_raw) else None

    corrective_raw = row.get(mapping["correctiveAction"]) if "correctiveAction" in mapping else None

    return QualityCheck(
        branch_slug=slug,
        submitted_by=submitted_by,
        submission_date=submitted_at,
        meal_service=normalize_meal_service(row.get(mapping["mealService"]) if "mealService" in mapping else None),
        product_name=product,
        section=normalize_section(row.get(mapping["section"]) if "section" in mapping else None),
        taste_score=taste,
        appearance_score=appearance,
        portion_qty_gm=portion,
        temp_celsius=temp or 0.0,
        taste_notes=_text(row, mapping.get("tasteNotes")),
        portion_notes=_text(row, mapping.get("portionNotes")),
        appearance_notes=_text(row, mapping.get("appearanceNotes")),
        remarks=_text(row, mapping.get("remarks")),
        corrective_action_taken=corrective_raw in TRUTHY,
        corrective_action_notes=_text(row, mapping.get("correctiveActionNotes")),
        photos=[],
        custom_fields={},
        status="submitted",
    )


def import_rows(
    db: Session,
    headers: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    *,
    submitted_by: int,
) -> Dict[str, Any]:
    if not rows:
        raise ValidationError("No data found in Excel file")

    branches = [{"slug": s, "name": n} for s, n in db.execute(select(Branch.slug, Branch.name))]
    mapping = detect_column_mapping(headers)

    imported: List[int] = []
    warnings: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for i, row in enumerate(rows):
        row_number = i + 2
        try:
            qc = _build_check(row, mapping, headers, branches, warnings, row_number, submitted_by)
        except ValueError as exc:
            errors.append({"row": row_number, "message": str(exc)})
            continue
        db.add(qc)
        db.flush()
        imported.append(qc.id)
    db.commit()

    inc_import("quality_checks", "imported", len(imported))
    inc_import("quality_checks", "error", len(errors))
    log.info(
        "quality import total=%d imported=%d warnings=%d errors=%d",
        len(rows),
        len(imported),
        len(warnings),
        len(errors),
    )
    return {
        "success": True,
        "total": len(rows),
        "imported": len(imported),
        "warnings": len(warnings),
        "errors": len(errors),
        "details": {"success": imported, "warnings": warnings, "errors": errors},
        "columnMapping": mapping,
    }


def import_workbook(db: Session, principal: Principal, content: Optional[bytes]) -> Dict[str, Any]:
    if principal.user_id is None:
        raise PermissionDenied("A user account is required to import quality checks")
    if not content:
        raise ValidationError("No file provided")
    try:
        headers, rows = read_first_sheet(content)
    except Exception as exc:
        # openpyxl raises several unrelated types for non-xlsx uploads
        log.info("quality import unreadable workbook err=%s", type(exc).__name__)
        raise ValidationError("Could not read Excel file") from exc
    return import_rows(db, headers, rows, submitted_by=principal.user_id)
