from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from branchops.api.deps import get_db, service_errors
from branchops.core.branches import service as branches

router = APIRouter(tags=["branches"])


@router.get("/branches")
def list_branches(
    q: str = "",
    location: Optional[str] = None,
    manager: Optional[str] = None,
    min_hygiene_score: Optional[int] = None,
    db: Session = Depends(get_db),
):
    everything = branches.list_branches(db)
    return {
        "branches": branches.filter_branches(
            everything,
            q,
            location=location,
            manager=manager,
            min_hygiene_score=min_hygiene_score,
        ),
        "locations": branches.unique_locations(everything),
        "managers": branches.unique_managers(everything),
    }


@router.get("/branches/{slug}")
def get_branch(slug: str, db: Session = Depends(get_db)):
    with service_errors():
        return branches.get_branch(db, slug)


@router.post("/branches", status_code=201)
def create_branch(body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return branches.create_branch(db, body)


@router.put("/branches/{slug}")
def update_branch(slug: str, body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return branches.update_branch(db, slug, body)


@router.delete("/branches/{slug}")
def delete_branch(slug: str, db: Session = Depends(get_db)):
    with service_errors():
        branches.delete_branch(db, slug)
    return {"success": True}


@router.get("/roles")
def list_roles(db: Session = Depends(get_db)):
    return {"roles": branches.list_role_guides(db)}


@router.get("/roles/{role_id}")
def get_role(role_id: str, db: Session = Depends(get_db)):
    with service_errors():
        return branches.get_role_guide(db, role_id)
