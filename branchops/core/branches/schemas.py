from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Contact(_Doc):
    name: str = ""
    role: str = ""
    phone: str = ""
    email: str = ""


class DeliveryWindow(_Doc):
    day: str = ""
    time: str = ""
    items: str = ""


class Kpis(_Doc):
    sales_target: str = ""
    waste_pct: str = ""
    hygiene_score: str = ""


class Media(_Doc):
    photos: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)


class BranchDoc(_Doc):
    id: str | None = None
    slug: str = ""
    name: str = ""
    school: str = ""
    location: str = ""
    manager: str = ""
    contacts: List[Contact] = Field(default_factory=list)
    operating_hours: str = ""
    delivery_schedule: List[DeliveryWindow] = Field(default_factory=list)
    kpis: Kpis = Field(default_factory=Kpis)
    roles: List[str] = Field(default_factory=list)
    media: Media = Field(default_factory=Media)


class RoleGuideDoc(_Doc):
    role_id: str
    name: str
    description: str = ""
    responsibilities: List[str] = Field(default_factory=list)
    daily_flow: Dict[str, List[dict]] = Field(default_factory=dict)
    checklists: Dict[str, List[dict]] = Field(default_factory=dict)
    dos: List[str] = Field(default_factory=list)
    donts: List[str] = Field(default_factory=list)
