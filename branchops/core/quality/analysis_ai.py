"""LLM summaries of quality check data, cached per period and branch."""

from __future__ import annotations

import hmac
import logging
import os
import time
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.ai.gateway import AIGatewayService
from branchops.core.ai.models import AIGatewayRequest
from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import Branch, QualityAnalysis, QualityCheck
from branchops.core.errors import NotFoundError, ValidationError
from branchops.core.quality.analytics import fetch_checks, is_high, is_low

log = logging.getLogger("branchops.quality")

ANALYSIS_MODEL = "gpt-4o"
GENERATED_BY = "openai-gpt-4o"
CACHE_TTL_SECONDS = 3600
MAX_NOTES_IN_PROMPT = 100
WEEKLY_WINDOW_DAYS = 7

SYSTEM_PROMPT = (
    "You are an expert food quality analyst. Analyze quality control data and provide "
    "actionable insights in JSON format."
)

OUTPUT_SCHEMA = """{
  "summary": "string",
  "insights": [{"type": "critical|warning|success|info", "title": "string", "description": "string",
                "branches": ["branch1"], "products": ["product1"]}],
  "commonIssues": [{"issue": "string", "frequency": "number", "branches": ["branch1"], "sections": ["Hot", "Cold"]}],
  "topPerformers": [{"name": "string", "type": "branch|product", "avgScore": "number", "note": "string"}],
  "lowPerformers": [{"name": "string", "type": "branch|product", "avgScore": "number",
                     "criticalProducts": ["product1"], "note": "string"}],
  "recommendations": [{"priority": "high|medium|low", "action": "string", "target": "string",
                       "expectedImpact": "string"}],
  "trends": {"mealServiceComparison": "string", "sectionComparison": "string",
             "temperatureIssues": "string", "portionConsistency": "string"}
}"""


class QualityAnalysisDoc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    summary: str
    insights: List[Dict[str, Any]] = Field(default_factory=list)
    common_issues: List[Dict[str, Any]] = Field(default_factory=list)
    top_performers: List[Dict[str, Any]] = Field(default_factory=list)
    low_performers: List[Dict[str, Any]] = Field(default_factory=list)
    recommendations: List[Dict[str, Any]] = Field(default_factory=list)
    trends: Dict[str, Any] = Field(default_factory=dict)


def to_dict(row: QualityAnalysis) -> Dict[str, Any]:
    return {
        "id": row.id,
        "analysisDate": row.analysis_date.isoformat(),
        "periodType": row.period_type,
        "periodStart": row.period_start.isoformat(),
        "periodEnd": row.period_end.isoformat(),
        "branchSlug": row.branch_slug,
        "summary": row.summary,
        "insights": row.insights or [],
        "commonIssues": row.common_issues or [],
        "topPerformers": row.top_performers or [],
        "lowPerformers": row.low_performers or [],
        "recommendations": row.recommendations or [],
        "trends": row.trends or {},
        "totalSubmissions": row.total_submissions,
        "branchesAnalyzed": row.branches_analyzed or [],
        "generatedBy": row.generated_by,
        "generationTimeMs": row.generation_time_ms,
        "createdAt": iso(row.created_at),
    }


def _parse_day(value: str, field: str) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: {value}") from exc


def _cache_query(period_type: str, start: date, end: date, branch: Optional[str]):
    stmt = select(QualityAnalysis).where(
        QualityAnalysis.period_type == period_type,
        QualityAnalysis.period_start == start,
        QualityAnalysis.period_end == end,
    )
    if branch:
        stmt = stmt.where(QualityAnalysis.branch_slug == branch)
    else:
        stmt = stmt.where(QualityAnalysis.branch_slug.is_(None))
    return stmt.order_by(QualityAnalysis.created_at.desc(), QualityAnalysis.id.desc())


def find_cached(
    db: Session,
    period_type: str,
    start: date,
    end: date,
    branch: Optional[str] = None,
    *,
    max_age_seconds: Optional[int] = CACHE_TTL_SECONDS,
) -> Optional[QualityAnalysis]:
    row = db.scalars(_cache_query(period_type, start, end, branch).limit(1)).first()
    if row is None:
        return None
    if max_age_seconds is not None and (utc_now() - row.created_at).total_seconds() >= max_age_seconds:
        return None
    return row


def _branch_stats(checks: Sequence[QualityCheck], names: Dict[str, str]) -> List[Dict[str, Any]]:
    stats = []
    for slug in dict.fromkeys(c.branch_slug for c in checks):
        rows = [c for c in checks if c.branch_slug == slug]
        stats.append(
            {
                "branchSlug": slug,
                "branchName": names.get(slug) or slug,
                "count": len(rows),
                "avgTaste": f"{sum(r.taste_score for r in rows) / len(rows):.1f}",
                "avgAppearance": f"{sum(r.appearance_score for r in rows) / len(rows):.1f}",
            }
        )
    return stats


def _notes(qc: QualityCheck) -> str:
    parts = [
        f"Taste: {qc.taste_notes}" if qc.taste_notes else None,
        f"Appearance: {qc.appearance_notes}" if qc.appearance_notes else None,
        f"Portion: {qc.portion_notes}" if qc.portion_notes else None,
        f"Remarks: {qc.remarks}" if qc.remarks else None,
        f"Action Taken: {qc.corrective_action_notes}" if qc.corrective_action_notes else None,
    ]
    return " | ".join(p for p in parts if p)


def build_prompt(
    checks: Sequence[QualityCheck],
    names: Dict[str, str],
    *,
    period_type: str,
    start: date,
    end: date,
) -> str:
    total = len(checks)
    avg_taste = sum(c.taste_score for c in checks) / total
    avg_appearance = sum(c.appearance_score for c in checks) / total
    low = sum(1 for c in checks if is_low(c))
    high = sum(1 for c in checks if is_high(c))
    branches = _branch_stats(checks, names)

    with_notes = [
        c for c in checks
        if c.taste_notes or c.appearance_notes or c.remarks or c.corrective_action_notes
    ]
    note_lines = [
        f"{i}. [{names.get(c.branch_slug) or c.branch_slug}] {c.product_name} ({c.section}) - "
        f"Scores: {c.taste_score}/5 taste, {c.appearance_score}/5 appearance\n   Notes: {_notes(c)}"
        for i, c in enumerate(with_notes[:MAX_NOTES_IN_PROMPT], start=1)
    ]
    more = ""
    if len(with_notes) > MAX_NOTES_IN_PROMPT:
        more = f"\n(... {len(with_notes) - MAX_NOTES_IN_PROMPT} more submissions with notes)"

    branch_lines = "\n".join(
        f"- {b['branchName']}: {b['count']} checks, Taste {b['avgTaste']}, Appearance {b['avgAppearance']}"
        for b in branches
    )
    return (
        "You are a food quality analyst for a catering company operating school branches. "
        "Analyze the following quality control data and provide actionable insights.\n\n"
        f"PERIOD: {period_type} analysis from {start.isoformat()} to {end.isoformat()}\n"
        f"TOTAL SUBMISSIONS: {total}\n"
        f"BRANCHES ANALYZED: {len(branches)}\n\n"
        "AGGREGATE STATISTICS:\n"
        f"- Average Taste Score: {avg_taste:.2f}/5\n"
        f"- Average Appearance Score: {avg_appearance:.2f}/5\n"
        f"- Low Scores (<=2): {low} submissions ({low / total * 100:.1f}%)\n"
        f"- High Scores (>=4): {high} submissions ({high / total * 100:.1f}%)\n\n"
        f"BRANCH PERFORMANCE:\n{branch_lines}\n\n"
        "DETAILED NOTES AND FEEDBACK:\n" + "\n\n".join(note_lines) + more + "\n\n"
        "Provide an executive summary (2-3 sentences), critical issues, recurring patterns with "
        "frequency counts, top and low performers with scores, 3-5 practical recommendations and "
        "trends across meal services, sections, temperature and portions.\n\n"
        f"Format the response as JSON with this structure:\n{OUTPUT_SCHEMA}\n\n"
        "Return ONLY the JSON object, no additional text or markdown formatting."
    )


def generate_analysis(
    db: Session,
    *,
    start_date: Optional[str],
    end_date: Optional[str],
    period_type: str = "weekly",
    branch: Optional[str] = None,
    gateway: AIGatewayService | None = None,
) -> Dict[str, Any]:
    """Return a cached analysis younger than an hour or generate and store a new one.

    Raises NotFoundError when the period has no quality checks.
    """
    if not start_date or not end_date:
        raise ValidationError("Both startDate and endDate are required")
    start = _parse_day(start_date, "startDate")
    end = _parse_day(end_date, "endDate")
    period_type = period_type or "weekly"

    cached = find_cached(db, period_type, start, end, branch)
    if cached is not None:
        log.info("quality analysis cache hit id=%s period=%s..%s", cached.id, start, end)
        return {
            "cached": True,
            "analysis": to_dict(cached),
            "message": "Returning cached analysis (generated less than 1 hour ago)",
        }

    began = time.monotonic()
    checks = fetch_checks(db, start.isoformat(), end.isoformat(), branch=branch)
    if not checks:
        raise NotFoundError(f"No quality check submissions found between {start.isoformat()} and {end.isoformat()}")

    names = {slug: name for slug, name in db.execute(select(Branch.slug, Branch.name))}
    gateway = gateway or AIGatewayService()
    req = AIGatewayRequest(
        task="quality_analysis",
        model=ANALYSIS_MODEL,
        system_prompt=SYSTEM_PROMPT,
        user_content=build_prompt(checks, names, period_type=period_type, start=start, end=end),
        json_mode=True,
        temperature=0.7,
    )
    doc = gateway.complete_json(req, QualityAnalysisDoc)
    elapsed_ms = int((time.monotonic() - began) * 1000)

    branches = list(dict.fromkeys(c.branch_slug for c in checks))
    row = QualityAnalysis(
        analysis_date=utc_now().date(),
        period_type=period_type,
        period_start=start,
        period_end=end,
        branch_slug=branch,
        summary=doc["summary"],
        insights=doc["insights"],
        common_issues=doc["commonIssues"],
        recommendations=doc["recommendations"],
        top_performers=doc["topPerformers"],
        low_performers=doc["lowPerformers"],
        trends=doc["trends"],
        total_submissions=len(checks),
        branches_analyzed=branches,
        generated_by=GENERATED_BY,
        generation_time_ms=elapsed_ms,
    )
    db.add(row)
    db.commit()
    log.info(
        "quality analysis generated id=%s submissions=%d branches=%d ms=%d",
        row.id,
        len(checks),
        len(branches),
        elapsed_ms,
    )
    analysis = to_dict(row)
    analysis["metadata"] = {
        "periodType": period_type,
        "periodStart": start.isoformat(),
        "periodEnd": end.isoformat(),
        "totalSubmissions": len(checks),
        "branchesAnalyzed": len(branches),
        "generationTimeMs": elapsed_ms,
    }
    return {"success": True, "cached": False, "analysis": analysis}


def list_analyses(
    db: Session,
    *,
    period_type: str = "weekly",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    latest: bool = False,
) -> List[Dict[str, Any]]:
    """Stored analyses: the latest of a type, one specific period, or the ten most recent."""
    stmt = select(QualityAnalysis)
    limit = 10
    if latest:
        stmt = stmt.where(QualityAnalysis.period_type == period_type)
        limit = 1
    elif start_date and end_date:
        stmt = stmt.where(
            QualityAnalysis.period_type == period_type,
            QualityAnalysis.period_start == _parse_day(start_date, "startDate"),
            QualityAnalysis.period_end == _parse_day(end_date, "endDate"),
        )
        limit = 1
    stmt = stmt.order_by(QualityAnalysis.created_at.desc(), QualityAnalysis.id.desc()).limit(limit)
    return [to_dict(r) for r in db.scalars(stmt)]


def cron_secret_ok(authorization: Optional[str]) -> bool:
    secret = (os.getenv("CRON_SECRET") or "").strip()
    if not secret or not authorization:
        return False
    return hmac.compare_digest(authorization.encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


def run_weekly_analysis(
    db: Session,
    *,
    today: Optional[date] = None,
    gateway: AIGatewayService | None = None,
) -> Dict[str, Any]:
    """Scheduled job: analyse the last seven days once."""
    end = today or utc_now().date()
    start = end - timedelta(days=WEEKLY_WINDOW_DAYS)

    if find_cached(db, "weekly", start, end, max_age_seconds=None) is not None:
        log.info("weekly quality analysis skipped, already exists period=%s..%s", start, end)
        return {"message": "Analysis already exists for this period", "skipped": True}
    if not fetch_checks(db, start.isoformat(), end.isoformat()):
        log.info("weekly quality analysis skipped, no data period=%s..%s", start, end)
        return {"message": "No data to analyze", "submissionsCount": 0}

    result = generate_analysis(
        db,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        period_type="weekly",
        gateway=gateway,
    )
    analysis = result["analysis"]
    return {
        "success": True,
        "message": "Weekly analysis generated successfully",
        "analysisId": analysis["id"],
        "period": {"start": analysis["periodStart"], "end": analysis["periodEnd"]},
        "submissionsAnalyzed": analysis["totalSubmissions"],
    }
