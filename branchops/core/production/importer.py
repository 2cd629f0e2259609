"""Tab separated production plan paste -> weekly schedule items.

Expected layout (header row first, column order may vary)::

    Date of Production    Main Recipes        QTY Order   UO   Stations
    Monday, November 3, 2025  Beef Burger 1 KG  8.5       Kg   Butchery
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from branchops.core.errors import ValidationError

STATIONS = ("Butchery", "Hot Section", "Pantry", "Desserts")
DEFAULT_STATION = "Hot Section"
DEFAULT_UNIT = "Kg"

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_HEADER_KEYWORDS = {
    "date": ("date", "production"),
    "recipe": ("recipe", "main", "item"),
    "quantity": ("qty", "quantity", "order"),
    "unit": ("unit", "uo"),
    "station": ("station", "section"),
}
_FALLBACK_INDEX = {"date": 0, "recipe": 1, "quantity": 2, "unit": 3, "station": 4}

_DATE_FORMATS = (
    "%A, %B %d, %Y",
    "%B %d, %Y",
    "%A, %d %B %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%d-%b-%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)

_LEADING_NUMBER = re.compile(r"^\s*([-+]?\d*\.?\d+)")


@dataclass
class ParsedProductionItem:
    date: date
    recipe_name: str
    quantity: float
    unit: str
    station: str

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.date.weekday()]


def detect_columns(header: Sequence[str]) -> Dict[str, int]:
    """First header cell containing any keyword wins; -1 when absent."""
    lowered = [h.strip().lower() for h in header]
    found = {}
    for field, keywords in _HEADER_KEYWORDS.items():
        found[field] = next((i for i, h in enumerate(lowered) if any(k in h for k in keywords)), -1)
    return found


def parse_date(text: str) -> Optional[date]:
    text = (text or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_quantity(text: str) -> float:
    m = _LEADING_NUMBER.match(text or "")
    return float(m.group(1)) if m else 0.0


def match_station(text: str) -> str:
    lowered = (text or "").lower()
    for station in STATIONS:
        if station.lower() in lowered:
            return station
    return DEFAULT_STATION


def _cell(cols: List[str], idx: int) -> str:
    return cols[idx] if 0 <= idx < len(cols) else ""


def parse_production_plan(raw: str) -> List[ParsedProductionItem]:
    lines = (raw or "").strip().replace("\r\n", "\n").split("\n")
    if len(lines) < 2:
        raise ValidationError("Please paste at least 2 rows of data (header + data)")

    columns = detect_columns(lines[0].split("\t"))

    def pick(cols: List[str], field: str) -> str:
        idx = columns[field]
        return _cell(cols, idx if idx >= 0 else _FALLBACK_INDEX[field])

    items: List[ParsedProductionItem] = []
    for line in lines[1:]:
        cols = [c.strip() for c in line.split("\t")]
        if not cols or not cols[0]:
            continue

        recipe_name = pick(cols, "recipe")
        quantity = parse_quantity(pick(cols, "quantity"))
        if not recipe_name or quantity <= 0:
            continue
        day = parse_date(pick(cols, "date"))
        if day is None:
            continue

        items.append(
            ParsedProductionItem(
                date=day,
                recipe_name=recipe_name,
                quantity=quantity,
                unit=pick(cols, "unit") or DEFAULT_UNIT,
                station=match_station(pick(cols, "station")),
            )
        )

    if not items:
        raise ValidationError("No valid items found. Check your data format.")

    items.sort(key=lambda it: it.date)
    return items


def build_schedule(
    items: Sequence[ParsedProductionItem],
    *,
    created_by: str,
    week_start: Optional[date] = None,
    week_end: Optional[date] = None,
) -> Dict[str, object]:
    """Group parsed items per day into a camelCase schedule document."""
    dates = sorted({it.date for it in items})
    week_start = week_start or dates[0]
    week_end = week_end or dates[-1]

    days: Dict[date, List[Dict[str, object]]] = {}
    for n, it in enumerate(items):
        days.setdefault(it.date, []).append(
            {
                "itemId": f"prod-{n}",
                "recipeName": it.recipe_name,
                "quantity": it.quantity,
                "unit": it.unit,
                "station": it.station,
                "notes": "",
                "completed": False,
            }
        )

    return {
        "scheduleId": f"week-{week_start.isoformat()}",
        "weekStart": week_start.isoformat(),
        "weekEnd": week_end.isoformat(),
        "createdBy": created_by,
        "days": [
            {"date": d.isoformat(), "dayName": DAY_NAMES[d.weekday()], "items": day_items}
            for d, day_items in sorted(days.items())
        ],
    }
