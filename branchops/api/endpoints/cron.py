from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from branchops.api.deps import get_ai_gateway, get_db, service_errors
from branchops.core.ai.gateway import AIGatewayService
from branchops.core.quality.analysis_ai import cron_secret_ok, run_weekly_analysis

log = logging.getLogger("branchops.cron")

router = APIRouter(prefix="/cron", tags=["cron"])


@router.api_route("/weekly-quality-analysis", methods=["GET", "POST"])
def weekly_quality_analysis(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: AIGatewayService = Depends(get_ai_gateway),
):
    if not cron_secret_ok(authorization):
        log.info("cron deny job=weekly-quality-analysis")
        raise HTTPException(status_code=401, detail="Unauthorized")
    with service_errors():
        return run_weekly_analysis(db, gateway=gateway)
