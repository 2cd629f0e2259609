"""Small helpers shared by the Excel readers (quality import, SharePoint sync)."""

from __future__ import annotations

import io
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import openpyxl

EXCEL_EPOCH = datetime(1899, 12, 30)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%Y %H:%M", "%m/%d/%Y %H:%M:%S", "%d-%b-%Y", "%d %b %Y", "%b %d, %Y", "%Y/%m/%d")


def safe_str(v: Any) -> str:
    return "" if v is None else str(v).strip()


def read_first_sheet(content: bytes) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Header row plus one dict per non-blank data row of the first worksheet."""
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        ws = wb[wb.sheetnames[0]]
        it = ws.iter_rows(values_only=True)
        try:
            first = next(it)
        except StopIteration:
            return [], []
        headers = [safe_str(h) for h in first]
        rows: List[Dict[str, Any]] = []
        for values in it:
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                continue
            rows.append({h: values[i] if i < len(values) else None for i, h in enumerate(headers) if h})
    finally:
        wb.close()
    return [h for h in headers if h], rows


def leading_int(value: Any) -> Optional[int]:
    """'4', 4.7, ' 3 stars' -> int; None when no leading integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    m = _LEADING_INT.match(safe_str(value))
    return int(m.group(1)) if m else None


def leading_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = _LEADING_FLOAT.match(safe_str(value))
    return float(m.group(1)) if m else None


def excel_serial_to_datetime(serial: float) -> datetime:
    return EXCEL_EPOCH + timedelta(days=float(serial))


def parse_excel_date(value: Any) -> Optional[datetime]:
    """Datetime cells, Excel serial numbers, ISO or common US-style strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return excel_serial_to_datetime(value)
        except (OverflowError, ValueError):
            return None
    text = safe_str(value)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None
