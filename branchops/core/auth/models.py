from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Principal:
    subject: str
    roles: List[str]
    email: Optional[str] = None
    name: Optional[str] = None
    user_id: Optional[int] = field(default=None, compare=False)

    @property
    def role(self) -> Optional[str]:
        return self.roles[0] if self.roles else None

    def has_any_role(self, allowed) -> bool:
        s = set(self.roles or [])
        return any(r in s for r in allowed)

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.subject
