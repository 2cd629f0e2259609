from __future__ import annotations

import copy
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import ProductionSchedule
from branchops.core.errors import NotFoundError, ValidationError
from branchops.core.observability.metrics import inc_import
from branchops.core.production.importer import build_schedule, parse_production_plan

log = logging.getLogger("branchops.production")


def to_doc(row: ProductionSchedule) -> Dict[str, Any]:
    return {
        "scheduleId": row.schedule_id,
        "weekStart": row.week_start.isoformat(),
        "weekEnd": row.week_end.isoformat(),
        "createdBy": row.created_by or "",
        "createdAt": iso(row.created_at),
        "days": row.days or [],
    }


def _parse_day(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}") from exc


def _get(db: Session, schedule_id: str) -> ProductionSchedule:
    row = db.get(ProductionSchedule, schedule_id)
    if row is None:
        raise NotFoundError("Schedule not found")
    return row


def list_schedules(db: Session) -> List[Dict[str, Any]]:
    rows = db.scalars(select(ProductionSchedule).order_by(ProductionSchedule.week_start.desc()))
    return [to_doc(r) for r in rows]


def get_schedule(db: Session, schedule_id: str) -> Dict[str, Any]:
    return to_doc(_get(db, schedule_id))


def save_schedule(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Create or replace a schedule. The id defaults to ``week-{weekStart}``."""
    if not payload.get("weekStart") or not payload.get("weekEnd"):
        raise ValidationError("Please set week start and end dates")
    week_start = _parse_day(payload["weekStart"], "weekStart")
    week_end = _parse_day(payload["weekEnd"], "weekEnd")
    schedule_id = payload.get("scheduleId") or f"week-{week_start.isoformat()}"

    row = db.get(ProductionSchedule, schedule_id)
    if row is None:
        row = ProductionSchedule(schedule_id=schedule_id)
        db.add(row)
        log.info("production schedule created id=%s", schedule_id)
    else:
        log.info("production schedule replaced id=%s", schedule_id)
    row.week_start = week_start
    row.week_end = week_end
    row.created_by = payload.get("createdBy") or ""
    row.days = payload.get("days") or []
    db.commit()
    return to_doc(row)


def import_schedule(
    db: Session,
    raw: str,
    *,
    created_by: str,
    week_start: Optional[str] = None,
    week_end: Optional[str] = None,
) -> Dict[str, Any]:
    items = parse_production_plan(raw)
    doc = build_schedule(
        items,
        created_by=created_by,
        week_start=_parse_day(week_start, "weekStart") if week_start else None,
        week_end=_parse_day(week_end, "weekEnd") if week_end else None,
    )
    inc_import("production", "imported", len(items))
    return save_schedule(db, doc)


def update_schedule(db: Session, schedule_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    row = _get(db, schedule_id)
    changes = changes or {}
    if "weekStart" in changes:
        row.week_start = _parse_day(changes["weekStart"], "weekStart")
    if "weekEnd" in changes:
        row.week_end = _parse_day(changes["weekEnd"], "weekEnd")
    if "createdBy" in changes:
        row.created_by = changes["createdBy"]
    if "days" in changes:
        row.days = changes["days"] or []
    db.commit()
    return to_doc(row)


def set_item_completed(db: Session, schedule_id: str, *, day: str, item_id: str, completed: bool) -> Dict[str, Any]:
    """Unknown day or item leaves the schedule unchanged."""
    row = _get(db, schedule_id)
    days = copy.deepcopy(row.days or [])
    for d in days:
        if d.get("date") != day:
            continue
        for item in d.get("items") or []:
            if item.get("itemId") == item_id:
                item["completed"] = bool(completed)
    # JSON columns are not mutation-tracked; assign a fresh value
    row.days = days
    row.updated_at = utc_now()
    db.commit()
    return to_doc(row)


def delete_schedule(db: Session, schedule_id: str) -> Dict[str, Any]:
    row = _get(db, schedule_id)
    doc = to_doc(row)
    db.delete(row)
    db.commit()
    return doc


def items_for_day(db: Session, day: date, *, station: Optional[str] = None) -> List[Dict[str, Any]]:
    """Production items scheduled on ``day`` across all schedules covering it."""
    rows = db.scalars(
        select(ProductionSchedule).where(
            ProductionSchedule.week_start <= day,
            ProductionSchedule.week_end >= day,
        )
    )
    key = day.isoformat()
    out = []
    for row in rows:
        for d in row.days or []:
            if d.get("date") != key:
                continue
            for item in d.get("items") or []:
                if station and item.get("station") != station:
                    continue
                out.append({**item, "scheduleId": row.schedule_id, "date": key})
    return out
