"""Draft a notification from a manager's free-text description."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from branchops.core.ai.gateway import AIGatewayService
from branchops.core.ai.models import AIGatewayRequest
from branchops.core.auth.roles import ALL_ROLES
from branchops.core.errors import ValidationError

log = logging.getLogger("branchops.ai")

COMPOSER_MODEL = "gpt-4o"
MAX_PROMPT_CHARS = 2000
MAX_TITLE = 100
MAX_PREVIEW = 150
MIN_EXPIRY_DAYS = 1
MAX_EXPIRY_DAYS = 30

SYSTEM_PROMPT = f"""You are an assistant for a catering and central kitchen operations system.
Compose clear, professional notifications from short descriptions written by managers.

NOTIFICATION TYPES (pick the most appropriate):
- feature: new tools, capabilities or improvements to the system
- patch: bug fixes, corrections and minor improvements
- alert: warnings, reminders and policy changes that need attention
- announcement: general news and information
- urgent: emergencies and time-critical actions

PRIORITY: "urgent" when the description says urgent, ASAP, critical, immediately, emergency
or important; otherwise "normal".

TARGET ROLES (only these exact values): {", ".join(sorted(ALL_ROLES))}.
Use null to reach everyone unless the description names specific roles.

GUIDELINES:
1. title: concise and action oriented, at most 80 characters.
2. preview: one line summary for the notification list, at most 120 characters.
3. content: Markdown. Start with a ## heading, use ### subsections, bullet points and **bold**
   for key dates, times and locations. Cover what, when, where, who is affected and any action required.
4. expires_in_days: 1-2 days for past events, days until the event plus 1-2 for upcoming events,
   7-14 for general announcements, 3-7 for urgent matters.

Return ONLY valid JSON. No markdown code fences, no explanation."""


class ComposedNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["feature", "patch", "alert", "announcement", "urgent"]
    priority: Literal["normal", "urgent"] = "normal"
    title: str
    preview: str
    content: str
    expires_in_days: float = 7
    target_roles: Optional[List[str]] = None


def build_user_prompt(description: str) -> str:
    return (
        "Compose a notification based on the following description:\n\n"
        f'"{description}"\n\n'
        "Return a JSON object with these fields:\n"
        '- type: one of "feature", "patch", "alert", "announcement", "urgent"\n'
        '- priority: "normal" or "urgent"\n'
        "- title: concise title (max 80 chars)\n"
        "- preview: short summary for the list (max 120 chars)\n"
        "- content: full markdown content\n"
        "- expires_in_days: number between 1-30\n"
        "- target_roles: array of role ids or null for everyone\n\n"
        "Return ONLY the JSON object."
    )


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def post_process(draft: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(draft)
    out["title"] = _truncate(out["title"], MAX_TITLE)
    out["preview"] = _truncate(out["preview"], MAX_PREVIEW)
    out["expires_in_days"] = int(max(MIN_EXPIRY_DAYS, min(MAX_EXPIRY_DAYS, round(out["expires_in_days"]))))
    roles = [r.lower() for r in out.get("target_roles") or [] if r and r.lower() in ALL_ROLES]
    out["target_roles"] = roles or None
    return out


def compose_notification(description: Optional[str], *, gateway: AIGatewayService | None = None) -> Dict[str, Any]:
    text = (description or "").strip() if isinstance(description, str) else ""
    if not text:
        raise ValidationError("Please provide a description for your notification")
    if len(text) > MAX_PROMPT_CHARS:
        raise ValidationError("Description is too long. Please keep it under 2000 characters.")

    gateway = gateway or AIGatewayService()
    req = AIGatewayRequest(
        task="notification_compose",
        model=COMPOSER_MODEL,
        system_prompt=SYSTEM_PROMPT,
        user_content=build_user_prompt(text),
        json_mode=True,
        temperature=0.7,
    )
    draft = post_process(gateway.complete_json(req, ComposedNotification))
    log.info("notification drafted type=%s priority=%s", draft["type"], draft["priority"])
    return {"success": True, "notification": draft}
