from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_db, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.auth.models import Principal
from branchops.core.db.base import utc_now
from branchops.core.production import service as production
from branchops.core.production.importer import build_schedule, parse_production_plan

router = APIRouter(prefix="/production-schedules", tags=["production"])


class ImportBody(CamelBody):
    raw_text: str = ""
    week_start: Optional[str] = None
    week_end: Optional[str] = None


class ItemCompletionBody(CamelBody):
    date: str
    item_id: str
    completed: bool


@router.get("")
def list_schedules(db: Session = Depends(get_db)):
    return production.list_schedules(db)


@router.post("", status_code=201)
def save_schedule(body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return production.save_schedule(db, body)


@router.post("/parse")
def parse_schedule(body: ImportBody, principal: Principal = Depends(current_principal)):
    """Preview an import without saving it."""
    with service_errors():
        items = parse_production_plan(body.raw_text)
    return {"itemsCount": len(items), "schedule": build_schedule(items, created_by=principal.display_name)}


@router.post("/import", status_code=201)
def import_schedule(
    body: ImportBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return production.import_schedule(
            db,
            body.raw_text,
            created_by=principal.display_name,
            week_start=body.week_start,
            week_end=body.week_end,
        )


@router.get("/today")
def today_items(station: Optional[str] = None, day: Optional[date] = None, db: Session = Depends(get_db)):
    day = day or utc_now().date()
    return {"date": day.isoformat(), "items": production.items_for_day(db, day, station=station)}


@router.get("/{schedule_id}")
def get_schedule(schedule_id: str, db: Session = Depends(get_db)):
    with service_errors():
        return production.get_schedule(db, schedule_id)


@router.put("/{schedule_id}")
def update_schedule(schedule_id: str, body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return production.update_schedule(db, schedule_id, body)


@router.patch("/{schedule_id}/items")
def set_item_completed(schedule_id: str, body: ItemCompletionBody, db: Session = Depends(get_db)):
    with service_errors():
        return production.set_item_completed(
            db,
            schedule_id,
            day=body.date,
            item_id=body.item_id,
            completed=body.completed,
        )


@router.delete("/{schedule_id}")
def delete_schedule(schedule_id: str, db: Session = Depends(get_db)):
    with service_errors():
        production.delete_schedule(db, schedule_id)
    return {"success": True}
