from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelBody(BaseModel):
    """Request body accepting camelCase keys (snake_case works too)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
