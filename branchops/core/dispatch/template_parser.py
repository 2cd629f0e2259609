"""Weekly dispatch template (pasted from Excel) -> per-branch item lists.

Row 0 carries branch names, each heading a block of day columns. Row 1 marks
one column of each block as ``Total``. Item rows follow with the item name in
column 1.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from branchops.core.dispatch.models import ParsedBranch, ParsedItem
from branchops.core.dispatch.unit_mappings import get_item_unit
from branchops.core.errors import ValidationError
from branchops.core.observability.metrics import inc_import

log = logging.getLogger("branchops.dispatch")

BRANCH_NAME_TO_SLUG: Dict[str, str] = {
    "Soufouh": "isc-soufouh",
    "DIP": "isc-dip",
    "Sharja": "isc-sharja",
    "AlJada": "isc-aljada",
    "Ajman": "isc-ajman",
    "UEQ": "isc-ueq",
    "RAK": "isc-rak",
    "YAS": "sabis-yas",
    "Ruwais": "sis-ruwais",
    "Ain": "isc-ain",
    "Khalifa": "isc-khalifa",
}

TOTAL_LOOKAHEAD = 15


def parse_quantity(cell: str) -> float:
    """'1,250 KG' -> 1250.0. Only the first whitespace separated token counts."""
    tokens = (cell or "").replace(",", "").split()
    if not tokens:
        return 0.0
    try:
        return float(tokens[0])
    except ValueError:
        return 0.0


def find_total_columns(branch_headers: List[str], second_headers: List[str]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for index, header in enumerate(branch_headers):
        name = header.strip()
        if name not in BRANCH_NAME_TO_SLUG:
            continue
        for i in range(index, min(index + TOTAL_LOOKAHEAD, len(second_headers))):
            if second_headers[i].strip().lower() == "total":
                totals[name] = i
                break
    return totals


def parse_dispatch_template(
    raw: str,
    *,
    branch_names: Optional[Mapping[str, str]] = None,
) -> List[ParsedBranch]:
    """Return branches with at least one positive quantity.

    ``branch_names`` maps slug -> display name. When given, template branches
    without a stored branch are dropped.
    """
    # leading tabs are significant: the first header cell is usually empty
    lines = (raw or "").replace("\r\n", "\n").strip("\n").split("\n")
    if len(lines) < 2:
        raise ValidationError("Please paste data with header row and at least one item row")

    totals = find_total_columns(lines[0].split("\t"), lines[1].split("\t"))
    if not totals:
        raise ValidationError(
            "No branches with Total columns found. Make sure branch names like Soufouh, DIP, "
            'Sharja are in the header and each has a "Total" column.'
        )

    items: Dict[str, List[ParsedItem]] = {name: [] for name in totals}
    for line in lines[2:]:
        cells = line.split("\t")
        if len(cells) < 2 or not cells[1].strip():
            continue
        item_name = cells[1].strip()
        if item_name == "Recipe":
            continue
        for name, col in totals.items():
            qty = parse_quantity(cells[col].strip() if col < len(cells) else "")
            if qty > 0:
                items[name].append(ParsedItem(name=item_name, quantity=qty, unit=get_item_unit(item_name)))

    out: List[ParsedBranch] = []
    for name, branch_items in items.items():
        if not branch_items:
            continue
        slug = BRANCH_NAME_TO_SLUG[name]
        if branch_names is not None:
            if slug not in branch_names:
                log.warning("dispatch template branch without a stored branch slug=%s", slug)
                continue
            display = branch_names[slug]
        else:
            display = name
        out.append(ParsedBranch(branch_slug=slug, branch_name=display, items=branch_items))

    inc_import("dispatch_template", "imported", sum(len(b.items) for b in out))
    log.info("dispatch template parsed branches=%d items=%d", len(out), sum(len(b.items) for b in out))
    return out
