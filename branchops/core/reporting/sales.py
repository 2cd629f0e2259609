"""Sales analytics over the synced ``odoo_sales`` table."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.orm import Session

from branchops.core.db.base import utc_now
from branchops.core.errors import ValidationError
from branchops.core.reporting.tables import odoo_sales as sales

PERIODS = ("today", "week", "month", "year")
DEFAULT_TREND_DAYS = 30
MOVING_AVERAGE_WINDOW = 7

_REVENUE = func.coalesce(func.sum(sales.c.price_subtotal_with_tax), 0)
_UNITS = func.coalesce(func.sum(sales.c.qty), 0)
_ORDERS = func.count(distinct(sales.c.order_number))


def calc_change(current: float, previous: float) -> float:
    """Percentage change rounded to one decimal; 100 when growing from zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def _round2(value: float) -> float:
    return round(value, 2)


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def previous_month_start(day: date) -> date:
    first = month_start(day)
    return month_start(first - timedelta(days=1))


def period_bounds(period: str, today: date) -> Tuple[date, Optional[date]]:
    """[start, end) for a named period; end None means open ended."""
    if period == "today":
        return today, today + timedelta(days=1)
    if period == "week":
        return week_start(today), None
    if period == "year":
        return today.replace(month=1, day=1), None
    if period == "month":
        return month_start(today), None
    raise ValidationError(f"Unknown period: {period}")


def _window(start: date, end: Optional[date]):
    cond = sales.c.date >= start
    return and_(cond, sales.c.date < end) if end is not None else cond


def _totals(db: Session, start: date, end: Optional[date]) -> Dict[str, float]:
    revenue, units, orders = db.execute(select(_REVENUE, _UNITS, _ORDERS).where(_window(start, end))).one()
    revenue, units, orders = float(revenue or 0), float(units or 0), int(orders or 0)
    return {
        "revenue": revenue,
        "units": units,
        "orders": orders,
        "aov": _round2(revenue / orders) if orders else 0.0,
    }


def _with_changes(current: Dict[str, float], previous: Dict[str, float], *, aov: bool = True) -> Dict[str, Any]:
    keys = ("revenue", "units", "orders", "aov") if aov else ("revenue", "units", "orders")
    out: Dict[str, Any] = {k: current[k] for k in keys}
    out["changes"] = {k: calc_change(current[k], previous[k]) for k in keys}
    return out


def summary(db: Session, *, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or utc_now().date()
    this_week, this_month = week_start(today), month_start(today)

    day = _totals(db, today, today + timedelta(days=1))
    yesterday = _totals(db, today - timedelta(days=1), today)
    week = _totals(db, this_week, None)
    last_week = _totals(db, this_week - timedelta(days=7), this_week)
    month = _totals(db, this_month, None)
    last_month = _totals(db, previous_month_start(today), this_month)

    return {
        "today": _with_changes(day, yesterday),
        "thisWeek": _with_changes(week, last_week, aov=False),
        "thisMonth": _with_changes(month, last_month),
        "lastMonth": {k: last_month[k] for k in ("revenue", "units", "orders")},
    }


def _share(part: float, total: float) -> float:
    return round(part / total * 100, 1) if total > 0 else 0.0


def by_branch(db: Session, *, period: str = "month", today: Optional[date] = None) -> Dict[str, Any]:
    start, end = period_bounds(period, today or utc_now().date())
    rows = db.execute(
        select(sales.c.branch, _REVENUE.label("revenue"), _UNITS.label("units"), _ORDERS.label("orders"))
        .where(_window(start, end))
        .group_by(sales.c.branch)
        .order_by(_REVENUE.desc())
    ).all()
    total = sum(float(r.revenue) for r in rows)
    branches = [
        {
            "branch": r.branch or "Unknown",
            "revenue": float(r.revenue),
            "units": float(r.units),
            "orders": int(r.orders),
            "percentage": _share(float(r.revenue), total),
        }
        for r in rows
    ]
    return {"branches": branches, "totalRevenue": total, "period": period}


def top_products(
    db: Session,
    *,
    period: str = "month",
    limit: int = 10,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    start, end = period_bounds(period, today or utc_now().date())
    window = _window(start, end)
    named = and_(window, sales.c["items"].isnot(None), sales.c["items"] != "")
    base = (
        select(
            sales.c["items"].label("product"),
            sales.c.category,
            _REVENUE.label("revenue"),
            _UNITS.label("units"),
            func.count().label("order_count"),
        )
        .where(named)
        .group_by(sales.c["items"], sales.c.category)
    )
    by_revenue = db.execute(base.order_by(_REVENUE.desc()).limit(limit)).all()
    by_units = db.execute(base.order_by(_UNITS.desc()).limit(limit)).all()
    total_revenue, total_units = db.execute(select(_REVENUE, _UNITS).where(window)).one()
    total_revenue, total_units = float(total_revenue or 0), float(total_units or 0)

    def row(r, share_key: str, share: float) -> Dict[str, Any]:
        return {
            "product": r.product,
            "category": r.category or "Uncategorized",
            "revenue": float(r.revenue),
            "units": float(r.units),
            "orderCount": int(r.order_count),
            share_key: share,
        }

    return {
        "topByRevenue": [row(r, "revenuePercentage", _share(float(r.revenue), total_revenue)) for r in by_revenue],
        "topByUnits": [row(r, "unitsPercentage", _share(float(r.units), total_units)) for r in by_units],
        "totals": {"revenue": total_revenue, "units": total_units},
        "period": period,
    }


def moving_average(values: List[float], window: int = MOVING_AVERAGE_WINDOW) -> List[float]:
    out = []
    for i in range(len(values)):
        chunk = values[max(0, i - window + 1): i + 1]
        out.append(_round2(sum(chunk) / len(chunk)))
    return out


def trends(db: Session, *, days: int = DEFAULT_TREND_DAYS, today: Optional[date] = None) -> Dict[str, Any]:
    """Daily revenue, units and orders with a trailing 7 day revenue average."""
    today = today or utc_now().date()
    rows = db.execute(
        select(sales.c.date, _REVENUE.label("revenue"), _UNITS.label("units"), _ORDERS.label("orders"))
        .where(sales.c.date >= today - timedelta(days=int(days)))
        .group_by(sales.c.date)
        .order_by(sales.c.date)
    ).all()
    daily = [
        {"date": r.date.isoformat(), "revenue": float(r.revenue), "units": float(r.units), "orders": int(r.orders)}
        for r in rows
    ]
    for day, ma in zip(daily, moving_average([d["revenue"] for d in daily])):
        day["revenueMA7"] = ma

    total_revenue = sum(d["revenue"] for d in daily)
    return {
        "trends": daily,
        "summary": {
            "totalRevenue": total_revenue,
            "totalUnits": sum(d["units"] for d in daily),
            "totalOrders": sum(d["orders"] for d in daily),
            "avgDailyRevenue": _round2(total_revenue / len(daily)) if daily else 0.0,
        },
    }


CATEGORY_COLORS = (
    "#10B981",
    "#3B82F6",
    "#8B5CF6",
    "#F59E0B",
    "#EF4444",
    "#06B6D4",
    "#EC4899",
    "#84CC16",
    "#F97316",
    "#6366F1",
)
DEFAULT_HISTORY_DAYS = 7


def by_category(db: Session, *, period: str = "month", today: Optional[date] = None) -> Dict[str, Any]:
    """Revenue per product category with its share and a stable chart colour."""
    start, end = period_bounds(period, today or utc_now().date())
    rows = db.execute(
        select(
            sales.c.category,
            _REVENUE.label("revenue"),
            _UNITS.label("units"),
            _ORDERS.label("orders"),
            func.count(distinct(sales.c["items"])).label("product_count"),
        )
        .where(_window(start, end))
        .group_by(sales.c.category)
        .order_by(_REVENUE.desc())
    ).all()
    total = sum(float(r.revenue) for r in rows)
    categories = []
    for i, r in enumerate(rows):
        idx = i % len(CATEGORY_COLORS)
        categories.append(
            {
                "category": r.category or "Uncategorized",
                "revenue": float(r.revenue),
                "units": float(r.units),
                "orders": int(r.orders),
                "productCount": int(r.product_count),
                "percentage": _share(float(r.revenue), total),
                "colorIndex": idx,
                "color": CATEGORY_COLORS[idx],
            }
        )
    return {"categories": categories, "totalRevenue": total, "period": period}


def top_clients(
    db: Session,
    *,
    period: str = "month",
    limit: int = 10,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    start, end = period_bounds(period, today or utc_now().date())
    window = _window(start, end)
    rows = db.execute(
        select(
            sales.c.client,
            _REVENUE.label("revenue"),
            _UNITS.label("units"),
            _ORDERS.label("orders"),
            func.count(distinct(sales.c.date)).label("active_days"),
        )
        .where(and_(window, sales.c.client.isnot(None), sales.c.client != ""))
        .group_by(sales.c.client)
        .order_by(_REVENUE.desc())
        .limit(limit)
    ).all()
    # shares are of all revenue in the period, anonymous sales included
    total = float(db.execute(select(_REVENUE).where(window)).scalar() or 0)
    clients = [
        {
            "client": r.client,
            "revenue": float(r.revenue),
            "units": float(r.units),
            "orders": int(r.orders),
            "activeDays": int(r.active_days),
            "avgOrderValue": _round2(float(r.revenue) / int(r.orders)) if r.orders else 0.0,
            "percentage": _share(float(r.revenue), total),
        }
        for r in rows
    ]
    return {"clients": clients, "totalRevenue": total, "period": period}


def branch_history(db: Session, *, days: int = DEFAULT_HISTORY_DAYS, today: Optional[date] = None) -> Dict[str, Any]:
    """Daily revenue per branch over the ``days`` complete days before today.

    Branches without revenue are left out; the rest are ordered by their most
    recent day's revenue.
    """
    today = today or utc_now().date()
    start = today - timedelta(days=int(days))
    rows = db.execute(
        select(
            sales.c.branch,
            sales.c.date,
            _REVENUE.label("revenue"),
            _UNITS.label("units"),
            _ORDERS.label("orders"),
        )
        .where(_window(start, today))
        .group_by(sales.c.branch, sales.c.date)
        .order_by(sales.c.branch, sales.c.date)
    ).all()

    grouped: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        name = r.branch or "Unknown"
        entry = grouped.setdefault(name, {"branch": name, "history": [], "totalRevenue": 0.0, "totalOrders": 0})
        entry["history"].append(
            {"date": r.date.isoformat(), "revenue": float(r.revenue), "units": float(r.units), "orders": int(r.orders)}
        )
        entry["totalRevenue"] += float(r.revenue)
        entry["totalOrders"] += int(r.orders)

    branches = []
    for entry in grouped.values():
        if entry["totalRevenue"] <= 0:
            continue
        entry["avgRevenue"] = _round2(entry["totalRevenue"] / len(entry["history"]))
        branches.append(entry)
    branches.sort(key=lambda b: b["history"][-1]["revenue"], reverse=True)

    return {
        "branches": branches,
        "days": int(days),
        "dateRange": {"start": start.isoformat(), "end": (today - timedelta(days=1)).isoformat()},
    }


def sales_week_window(today: date) -> Tuple[date, date, bool]:
    """(start, end, complete) of the Sunday to Friday trading week to report.

    Friday's sales arrive with the Friday evening sync, so on Saturday and
    Sunday the week just ended is complete; on weekdays the running week is
    reported up to yesterday.
    """
    weekday = today.weekday()
    if weekday == 5:
        return today - timedelta(days=6), today - timedelta(days=1), True
    if weekday == 6:
        return today - timedelta(days=7), today - timedelta(days=2), True
    return today - timedelta(days=weekday + 1), today - timedelta(days=1), False


def _branch_totals(db: Session, start: date, end: date) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(sales.c.branch, _REVENUE.label("revenue"), _UNITS.label("units"), _ORDERS.label("orders"))
        .where(_window(start, end))
        .group_by(sales.c.branch)
        .order_by(_REVENUE.desc())
    ).all()
    return [
        {"branch": r.branch, "revenue": float(r.revenue), "units": float(r.units), "orders": int(r.orders)}
        for r in rows
    ]


def weekly_by_branch(db: Session, *, today: Optional[date] = None) -> Dict[str, Any]:
    start, end, complete = sales_week_window(today or utc_now().date())
    branches = _branch_totals(db, start, end + timedelta(days=1))
    for b in branches:
        b["branch"] = b["branch"] or "Unknown"
    return {
        "branches": branches,
        "weekStart": start.isoformat(),
        "weekEnd": end.isoformat(),
        "isComplete": complete,
    }


def yesterday_by_branch(db: Session, *, today: Optional[date] = None) -> Dict[str, Any]:
    """Yesterday's revenue per named branch; branches with no revenue are dropped."""
    day = (today or utc_now().date()) - timedelta(days=1)
    branches = [b for b in _branch_totals(db, day, day + timedelta(days=1)) if b["branch"] and b["revenue"] > 0]
    return {"branches": branches, "date": day.isoformat()}
