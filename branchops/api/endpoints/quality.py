from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_ai_gateway, get_db, require_roles, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.ai.gateway import AIGatewayService
from branchops.core.auth.models import Principal
from branchops.core.errors import NotFoundError
from branchops.core.quality import analysis_ai, analytics, importer
from branchops.core.quality import service as quality

router = APIRouter(prefix="/quality-checks", tags=["quality"])

_submitters = require_roles(*sorted(quality.SUBMITTER_ROLES))
_quality_admins = require_roles(*sorted(quality.QUALITY_ADMINS))
_admin = require_roles("admin")


class ReviewBody(CamelBody):
    status: Optional[str] = None
    admin_notes: Optional[str] = None


class FeedbackBody(CamelBody):
    feedback_text: Optional[str] = None


class AnalyzeBody(CamelBody):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    period_type: str = "weekly"
    branch: Optional[str] = None


# ------------------------------------------------------------
# Import, analytics and AI analysis
# ------------------------------------------------------------
@router.post("/import")
async def import_checks(
    file: Optional[UploadFile] = File(None),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    content = await file.read() if file is not None else None
    with service_errors():
        return importer.import_workbook(db, principal, content)


@router.get("/analytics")
def quality_analytics(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    _: Principal = Depends(_quality_admins),
    db: Session = Depends(get_db),
):
    with service_errors():
        return analytics.build_analytics(db, start_date, end_date)


@router.post("/analyze")
def analyze(
    body: AnalyzeBody,
    db: Session = Depends(get_db),
    gateway: AIGatewayService = Depends(get_ai_gateway),
):
    with service_errors():
        try:
            return analysis_ai.generate_analysis(
                db,
                start_date=body.start_date,
                end_date=body.end_date,
                period_type=body.period_type,
                branch=body.branch,
                gateway=gateway,
            )
        except NotFoundError as exc:
            raise HTTPException(
                status_code=404,
                detail={"error": "No quality check data found", "message": exc.message, "submissionsCount": 0},
            ) from exc


@router.get("/analyze")
def list_analyses(
    period_type: str = Query("weekly", alias="periodType"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    latest: bool = False,
    db: Session = Depends(get_db),
):
    with service_errors():
        found = analysis_ai.list_analyses(
            db,
            period_type=period_type,
            start_date=start_date,
            end_date=end_date,
            latest=latest,
        )
    return {"analyses": found}


# ------------------------------------------------------------
# Checks
# ------------------------------------------------------------
@router.get("")
def list_checks(
    branch: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    section: Optional[str] = None,
    meal_service: Optional[str] = Query(None, alias="mealService"),
    status: Optional[str] = None,
    limit: int = Query(quality.DEFAULT_LIST_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        checks = quality.list_checks(
            db,
            principal,
            branch=branch,
            start_date=start_date,
            end_date=end_date,
            section=section,
            meal_service=meal_service,
            status=status,
            limit=limit,
            offset=offset,
        )
    return {"checks": checks}


@router.post("", status_code=201)
def create_check(body: Dict[str, Any], principal: Principal = Depends(_submitters), db: Session = Depends(get_db)):
    with service_errors():
        return quality.create_check(db, principal, body)


@router.get("/{check_id}")
def get_check(check_id: int, principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return quality.get_check(db, principal, check_id)


@router.put("/{check_id}")
def review_check(
    check_id: int,
    body: ReviewBody,
    principal: Principal = Depends(_quality_admins),
    db: Session = Depends(get_db),
):
    with service_errors():
        return quality.review_check(db, principal, check_id, status=body.status, admin_notes=body.admin_notes)


@router.delete("/{check_id}")
def delete_check(check_id: int, _: Principal = Depends(_admin), db: Session = Depends(get_db)):
    with service_errors():
        return quality.delete_check(db, check_id)


# ------------------------------------------------------------
# Feedback
# ------------------------------------------------------------
@router.get("/{check_id}/feedback")
def list_feedback(check_id: int, principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        return quality.list_feedback(db, principal, check_id)


@router.post("/{check_id}/feedback", status_code=201)
def add_feedback(
    check_id: int,
    body: FeedbackBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return quality.add_feedback(db, principal, check_id, body.feedback_text)


@router.post("/{check_id}/feedback/{feedback_id}/read")
def mark_feedback_read(
    check_id: int,
    feedback_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        return quality.mark_feedback_read(db, principal, check_id, feedback_id)
