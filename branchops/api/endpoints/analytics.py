from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from branchops.api.deps import get_db, service_errors
from branchops.core.reporting import sales

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/sales/summary")
def sales_summary(db: Session = Depends(get_db)):
    return sales.summary(db)


@router.get("/sales/branches")
def sales_by_branch(period: str = "month", db: Session = Depends(get_db)):
    with service_errors():
        return sales.by_branch(db, period=period)


@router.get("/sales/products")
def sales_top_products(
    period: str = "month",
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    with service_errors():
        return sales.top_products(db, period=period, limit=limit)


@router.get("/sales/trends")
def sales_trends(days: int = Query(sales.DEFAULT_TREND_DAYS, ge=1, le=366), db: Session = Depends(get_db)):
    return sales.trends(db, days=days)


@router.get("/sales/categories")
def sales_by_category(period: str = "month", db: Session = Depends(get_db)):
    with service_errors():
        return sales.by_category(db, period=period)


@router.get("/sales/clients")
def sales_top_clients(
    period: str = "month",
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    with service_errors():
        return sales.top_clients(db, period=period, limit=limit)


@router.get("/sales/branches/history")
def sales_branch_history(
    days: int = Query(sales.DEFAULT_HISTORY_DAYS, ge=1, le=366),
    db: Session = Depends(get_db),
):
    return sales.branch_history(db, days=days)


@router.get("/sales/branches/weekly")
def sales_branches_weekly(db: Session = Depends(get_db)):
    return sales.weekly_by_branch(db)


@router.get("/sales/branches/yesterday")
def sales_branches_yesterday(db: Session = Depends(get_db)):
    return sales.yesterday_by_branch(db)
