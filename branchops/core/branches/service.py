from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from branchops.core.branches.schemas import BranchDoc, RoleGuideDoc
from branchops.core.db.models import Branch, RoleGuide
from branchops.core.errors import ConflictError, NotFoundError, ValidationError

log = logging.getLogger("branchops.branches")

DEFAULT_SEED_DIR = Path(__file__).resolve().parents[2] / "data"

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def to_doc(branch: Branch) -> Dict[str, Any]:
    doc = BranchDoc(
        id=branch.id,
        slug=branch.slug,
        name=branch.name,
        school=branch.school or "",
        location=branch.location or "",
        manager=branch.manager or "",
        contacts=branch.contacts or [],
        operating_hours=branch.operating_hours or "",
        delivery_schedule=branch.delivery_schedule or [],
        kpis=branch.kpis or {},
        roles=branch.roles or [],
        media=branch.media or {},
    )
    return doc.model_dump(by_alias=True)


def _apply(branch: Branch, doc: BranchDoc) -> None:
    data = doc.model_dump()
    branch.name = data["name"]
    branch.school = data["school"]
    branch.location = data["location"]
    branch.manager = data["manager"]
    branch.operating_hours = data["operating_hours"]
    # JSON columns store camelCase documents
    dumped = doc.model_dump(by_alias=True)
    branch.contacts = dumped["contacts"]
    branch.delivery_schedule = dumped["deliverySchedule"]
    branch.kpis = dumped["kpis"]
    branch.roles = dumped["roles"]
    branch.media = dumped["media"]


def hygiene_score(doc: Dict[str, Any]) -> Optional[int]:
    m = _LEADING_INT.match(str((doc.get("kpis") or {}).get("hygieneScore") or ""))
    return int(m.group(1)) if m else None


def list_branches(db: Session) -> List[Dict[str, Any]]:
    rows = db.scalars(select(Branch).order_by(Branch.name))
    return [to_doc(b) for b in rows]


def filter_branches(
    branches: List[Dict[str, Any]],
    query: str = "",
    *,
    location: Optional[str] = None,
    manager: Optional[str] = None,
    min_hygiene_score: Optional[int] = None,
) -> List[Dict[str, Any]]:
    q = (query or "").strip().lower()
    out = []
    for b in branches:
        if q and not any(q in (b.get(k) or "").lower() for k in ("name", "school", "location")):
            continue
        if location and location != "all" and b.get("location") != location:
            continue
        if manager and manager != "all" and b.get("manager") != manager:
            continue
        if min_hygiene_score:
            score = hygiene_score(b)
            if score is not None and score < min_hygiene_score:
                continue
        out.append(b)
    return out


def unique_locations(branches: List[Dict[str, Any]]) -> List[str]:
    return sorted({b.get("location") or "" for b in branches} - {""})


def unique_managers(branches: List[Dict[str, Any]]) -> List[str]:
    return sorted({b.get("manager") or "" for b in branches} - {""})


def _get(db: Session, slug: str) -> Branch:
    branch = db.scalar(select(Branch).where(Branch.slug == slug))
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


def get_branch(db: Session, slug: str) -> Dict[str, Any]:
    return to_doc(_get(db, slug))


def branch_names(db: Session) -> Dict[str, str]:
    return {slug: name for slug, name in db.execute(select(Branch.slug, Branch.name))}


def _next_id(db: Session) -> str:
    ids = db.scalars(select(Branch.id))
    numeric = [int(i) for i in ids if str(i).isdigit()]
    return str(max(numeric, default=0) + 1)


def create_branch(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    doc = BranchDoc.model_validate(payload)
    if not doc.slug or not doc.name:
        raise ValidationError("Missing required fields: slug, name")
    if db.scalar(select(func.count()).select_from(Branch).where(Branch.slug == doc.slug)):
        raise ConflictError("Branch slug already exists")

    branch = Branch(id=doc.id or _next_id(db), slug=doc.slug)
    _apply(branch, doc)
    db.add(branch)
    db.commit()
    log.info("branch created slug=%s id=%s", branch.slug, branch.id)
    return to_doc(branch)


def update_branch(db: Session, slug: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    branch = _get(db, slug)
    merged = {**to_doc(branch), **(changes or {}), "slug": slug, "id": branch.id}
    _apply(branch, BranchDoc.model_validate(merged))
    db.commit()
    return to_doc(branch)


def delete_branch(db: Session, slug: str) -> None:
    db.delete(_get(db, slug))
    db.commit()


# ------------------------------------------------------------
# Role guides
# ------------------------------------------------------------
def role_guide_to_doc(guide: RoleGuide) -> Dict[str, Any]:
    return RoleGuideDoc(
        role_id=guide.role_id,
        name=guide.name,
        description=guide.description or "",
        responsibilities=guide.responsibilities or [],
        daily_flow=guide.daily_flow or {},
        checklists=guide.checklists or {},
        dos=guide.dos or [],
        donts=guide.donts or [],
    ).model_dump(by_alias=True)


def list_role_guides(db: Session) -> List[Dict[str, Any]]:
    return [role_guide_to_doc(g) for g in db.scalars(select(RoleGuide).order_by(RoleGuide.name))]


def get_role_guide(db: Session, role_id: str) -> Dict[str, Any]:
    guide = db.get(RoleGuide, role_id)
    if guide is None:
        raise NotFoundError("Role not found")
    return role_guide_to_doc(guide)


# ------------------------------------------------------------
# Seed
# ------------------------------------------------------------
def seed_dir() -> Path:
    raw = (os.getenv("BRANCHOPS_SEED_DIR") or "").strip()
    return Path(raw) if raw else DEFAULT_SEED_DIR


def _load_yaml(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a list at the top level")
    return data


def seed_if_empty(db: Session, directory: Optional[Path] = None) -> Dict[str, int]:
    """Load branches.yaml and roles.yaml into empty tables. Existing rows are left untouched."""
    directory = directory or seed_dir()
    counts = {"branches": 0, "roles": 0}

    if not db.scalar(select(func.count()).select_from(Branch)):
        for raw in _load_yaml(directory / "branches.yaml"):
            doc = BranchDoc.model_validate(raw)
            branch = Branch(id=doc.id or str(counts["branches"] + 1), slug=doc.slug)
            _apply(branch, doc)
            db.add(branch)
            counts["branches"] += 1

    if not db.scalar(select(func.count()).select_from(RoleGuide)):
        for raw in _load_yaml(directory / "roles.yaml"):
            doc = RoleGuideDoc.model_validate(raw)
            dumped = doc.model_dump(by_alias=True)
            db.add(
                RoleGuide(
                    role_id=doc.role_id,
                    name=doc.name,
                    description=doc.description,
                    responsibilities=doc.responsibilities,
                    daily_flow=dumped["dailyFlow"],
                    checklists=dumped["checklists"],
                    dos=doc.dos,
                    donts=doc.donts,
                )
            )
            counts["roles"] += 1

    db.commit()
    if counts["branches"] or counts["roles"]:
        log.info("seeded branches=%d roles=%d from %s", counts["branches"], counts["roles"], directory)
    return counts
