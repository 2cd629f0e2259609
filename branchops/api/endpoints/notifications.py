from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from branchops.api.deps import current_principal, get_ai_gateway, get_db, service_errors
from branchops.core.ai.gateway import AIGatewayService
from branchops.core.auth.models import Principal
from branchops.core.notifications import composer_ai
from branchops.core.notifications import service as notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


class CreateNotificationBody(BaseModel):
    type: str = ""
    title: str = ""
    preview: str = ""
    content: str = ""
    priority: str = "normal"
    expires_in_days: Optional[int] = None
    target_roles: Optional[List[str]] = None


class ComposeBody(BaseModel):
    prompt: Optional[str] = None


@router.get("")
def list_notifications(principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    items = notifications.list_for_user(db, principal)
    return {"notifications": items, "unread_count": sum(1 for n in items if not n["is_read"])}


@router.post("", status_code=201)
def create_notification(
    body: CreateNotificationBody,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    with service_errors():
        n = notifications.create_notification(
            db,
            type=body.type,
            title=body.title,
            preview=body.preview,
            content=body.content,
            priority=body.priority,
            created_by=principal.display_name,
            expires_in_days=body.expires_in_days,
            target_roles=body.target_roles,
        )
    return {"success": True, "notification": notifications.to_dict(n)}


@router.post("/compose-ai")
def compose(body: ComposeBody, gateway: AIGatewayService = Depends(get_ai_gateway)):
    with service_errors():
        return composer_ai.compose_notification(body.prompt, gateway=gateway)


@router.post("/{notification_id}/read")
def mark_read(notification_id: int, principal: Principal = Depends(current_principal), db: Session = Depends(get_db)):
    with service_errors():
        notifications.mark_read(db, notification_id, notifications.user_identifier(principal))
    return {"success": True}


@router.delete("/{notification_id}")
def deactivate(notification_id: int, db: Session = Depends(get_db)):
    with service_errors():
        notifications.deactivate(db, notification_id)
    return {"success": True}
