from __future__ import annotations

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from branchops.core.db.session import get_engine

log = logging.getLogger("branchops.health")

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/api/v1/health/live")
def liveness():
    return {"status": "alive"}


@router.get("/api/v1/health/ready")
def readiness():
    """Readiness reflects ability to serve traffic: the database must answer."""
    problems: list[str] = []
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("readiness database check failed: %s", e)
        problems.append(f"database_unavailable:{type(e).__name__}")

    if problems:
        return JSONResponse(status_code=503, content={"status": "not_ready", "problems": problems})
    return {"status": "ready"}
