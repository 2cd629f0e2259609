"""Aggregated quality statistics for a date range.

Rows are aggregated in Python so the same code runs on SQLite and Postgres.
Averages are rounded to two decimals.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.db.models import Branch, QualityCheck
from branchops.core.errors import ValidationError
from branchops.core.quality.service import date_range

LOW_SCORE = 2
HIGH_SCORE = 4
TOP_PRODUCT_MIN_CHECKS = 3
TOP_PRODUCT_MIN_AVG = 4.0
BOTTOM_PRODUCT_MAX_AVG = 3.5
PRODUCT_LIMIT = 10
HOT_MIN_TEMP = 60
COLD_MAX_TEMP = 10


def _avg(values: Iterable[float]) -> float:
    values = list(values)
    return round(sum(values) / len(values), 2) if values else 0.0


def overall(qc: QualityCheck) -> float:
    return (qc.taste_score + qc.appearance_score) / 2.0


def is_low(qc: QualityCheck) -> bool:
    return qc.taste_score <= LOW_SCORE or qc.appearance_score <= LOW_SCORE


def is_high(qc: QualityCheck) -> bool:
    return qc.taste_score >= HIGH_SCORE and qc.appearance_score >= HIGH_SCORE


def is_temp_compliant(qc: QualityCheck) -> bool:
    if qc.section == "Hot":
        return qc.temp_celsius >= HOT_MIN_TEMP
    if qc.section == "Cold":
        return qc.temp_celsius <= COLD_MAX_TEMP
    return qc.section in ("Bakery", "Beverages")


def _group(rows: Sequence[QualityCheck], key: Callable[[QualityCheck], Any]) -> Dict[Any, List[QualityCheck]]:
    groups: Dict[Any, List[QualityCheck]] = defaultdict(list)
    for qc in rows:
        groups[key(qc)].append(qc)
    return groups


def _scores(rows: Sequence[QualityCheck]) -> Dict[str, float]:
    return {
        "avg_taste": _avg(r.taste_score for r in rows),
        "avg_appearance": _avg(r.appearance_score for r in rows),
    }


def fetch_checks(
    db: Session,
    start_date: str,
    end_date: str,
    *,
    branch: Optional[str] = None,
) -> List[QualityCheck]:
    start, end = date_range(start_date, end_date)
    stmt = select(QualityCheck).where(QualityCheck.submission_date >= start, QualityCheck.submission_date < end)
    if branch:
        stmt = stmt.where(QualityCheck.branch_slug == branch)
    return list(db.scalars(stmt.order_by(QualityCheck.submission_date.desc())))


def scores_over_time(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    out = []
    for day, group in sorted(_group(rows, lambda r: r.submission_date.date()).items()):
        out.append(
            {
                "date": day.isoformat(),
                "count": len(group),
                **_scores(group),
                "low_scores_count": sum(1 for r in group if is_low(r)),
            }
        )
    return out


def branch_performance(rows: Sequence[QualityCheck], names: Dict[str, str]) -> List[Dict[str, Any]]:
    out = []
    for slug, group in _group(rows, lambda r: r.branch_slug).items():
        out.append(
            {
                "branch_name": names.get(slug),
                "branch_slug": slug,
                "total_checks": len(group),
                **_scores(group),
                "avg_overall": _avg(overall(r) for r in group),
                "low_scores": sum(1 for r in group if is_low(r)),
                "high_scores": sum(1 for r in group if is_high(r)),
            }
        )
    return sorted(out, key=lambda b: b["avg_overall"], reverse=True)


def section_performance(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    out = []
    for section, group in _group(rows, lambda r: r.section).items():
        out.append(
            {
                "section": section,
                "total_checks": len(group),
                **_scores(group),
                "avg_overall": _avg(overall(r) for r in group),
                "low_scores": sum(1 for r in group if is_low(r)),
            }
        )
    return sorted(out, key=lambda s: s["avg_overall"], reverse=True)


def meal_service_comparison(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    return [
        {
            "meal_service": service,
            "total_checks": len(group),
            **_scores(group),
            "avg_temperature": _avg(r.temp_celsius for r in group),
        }
        for service, group in sorted(_group(rows, lambda r: r.meal_service).items())
    ]


def _products(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    out = []
    for (product, section), group in _group(rows, lambda r: (r.product_name, r.section)).items():
        raw_overall = sum(overall(r) for r in group) / len(group)
        out.append(
            {
                "product_name": product,
                "section": section,
                "check_count": len(group),
                **_scores(group),
                "avg_overall": round(raw_overall, 2),
                "_raw": raw_overall,
            }
        )
    return out


def top_products(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    picked = [
        p for p in _products(rows)
        if p["check_count"] >= TOP_PRODUCT_MIN_CHECKS and p["_raw"] >= TOP_PRODUCT_MIN_AVG
    ]
    picked.sort(key=lambda p: p["avg_overall"], reverse=True)
    return [{k: v for k, v in p.items() if k != "_raw"} for p in picked[:PRODUCT_LIMIT]]


def bottom_products(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    picked = [p for p in _products(rows) if p["_raw"] < BOTTOM_PRODUCT_MAX_AVG]
    picked.sort(key=lambda p: p["avg_overall"])
    return [{k: v for k, v in p.items() if k != "_raw"} for p in picked[:PRODUCT_LIMIT]]


def temperature_compliance(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    out = []
    for section, group in sorted(_group(rows, lambda r: r.section).items()):
        temps = [r.temp_celsius for r in group]
        out.append(
            {
                "section": section,
                "total": len(group),
                "compliant": sum(1 for r in group if is_temp_compliant(r)),
                "avg_temp": _avg(temps),
                "min_temp": min(temps),
                "max_temp": max(temps),
            }
        )
    return out


def score_distribution(rows: Sequence[QualityCheck]) -> List[Dict[str, Any]]:
    taste: Dict[int, int] = defaultdict(int)
    appearance: Dict[int, int] = defaultdict(int)
    for r in rows:
        taste[r.taste_score] += 1
        appearance[r.appearance_score] += 1
    return [
        {"score": score, "taste_frequency": taste.get(score, 0), "appearance_frequency": appearance.get(score, 0)}
        for score in sorted(set(taste) | set(appearance))
    ]


def build_analytics(db: Session, start_date: Optional[str], end_date: Optional[str]) -> Dict[str, Any]:
    if not start_date or not end_date:
        raise ValidationError("startDate and endDate are required")
    rows = fetch_checks(db, start_date, end_date)
    names = {slug: name for slug, name in db.execute(select(Branch.slug, Branch.name))}
    return {
        "scoresOverTime": scores_over_time(rows),
        "branchPerformance": branch_performance(rows, names),
        "sectionPerformance": section_performance(rows),
        "mealServiceComparison": meal_service_comparison(rows),
        "topProducts": top_products(rows),
        "bottomProducts": bottom_products(rows),
        "temperatureCompliance": temperature_compliance(rows),
        "scoreDistribution": score_distribution(rows),
    }
