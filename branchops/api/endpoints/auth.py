from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from branchops.api.deps import get_db, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.auth.provider import AuthError, issue_token
from branchops.core.users import service as users

log = logging.getLogger("branchops.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginBody(CamelBody):
    email: str = ""
    password: str = ""


class SignupBody(CamelBody):
    email: str = ""
    password: str = ""
    first_name: str = ""
    last_name: str = ""
    nationality: Optional[str] = None
    phone: Optional[str] = None


@router.post("/login")
def login(body: LoginBody, db: Session = Depends(get_db)):
    with service_errors():
        user = users.authenticate(db, email=body.email, password=body.password)
    try:
        token = issue_token(
            user_id=user.id,
            role=user.role,
            email=user.email,
            name=f"{user.first_name} {user.last_name}".strip(),
        )
    except AuthError as exc:
        log.error("token signing unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Token signing is not configured") from exc
    log.info("login user_id=%s role=%s", user.id, user.role)
    return {"token": token, "tokenType": "bearer", **users.session_payload(user)}


@router.post("/signup", status_code=201)
def signup(body: SignupBody, db: Session = Depends(get_db)):
    with service_errors():
        user = users.signup(
            db,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            nationality=body.nationality,
            phone=body.phone,
        )
    return {
        "success": True,
        "message": "Account created successfully. Please wait for admin approval.",
        "userId": user.id,
    }
