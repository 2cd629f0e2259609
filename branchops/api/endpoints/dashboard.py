from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_db
from branchops.core.auth.models import Principal
from branchops.core.dashboard.service import dashboard_for

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
def dashboard(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    return dashboard_for(db, principal)
