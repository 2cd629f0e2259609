from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def coerce_number(value) -> float:
    """"1,200.00" -> 1200.0; blanks and junk -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return 0.0


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MainIngredient(_Doc):
    name: str = ""
    quantity: float = 0
    unit: str = ""
    specifications: str = ""
    sub_recipe_id: Optional[str] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, v):
        return coerce_number(v)


class SubRecipeIngredient(_Doc):
    item: str = ""
    quantity: str = ""
    unit: str = "GM"
    notes: str = ""

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, v):
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        return str(v)


class PreparationStep(_Doc):
    step: int = 0
    instruction: str = ""
    time: str = ""
    critical: bool = False
    hint: str = ""


class MachineTool(_Doc):
    name: str = ""
    setting: str = ""
    purpose: str = ""
    notes: str = ""


class QualitySpecification(_Doc):
    parameter: str = ""
    appearance: str = ""
    texture: str = ""
    taste_flavor_profile: str = ""
    aroma: str = ""


class PackingLabeling(_Doc):
    packing_type: str = ""
    service_items: List[str] = Field(default_factory=list)
    label_requirements: str = ""
    storage_condition: str = ""
    shelf_life: str = ""


class SubRecipe(_Doc):
    sub_recipe_id: str = ""
    name: str = ""
    yield_: str = Field(default="1 KG", alias="yield")
    ingredients: List[SubRecipeIngredient] = Field(default_factory=list)
    preparation: List[PreparationStep] = Field(default_factory=list)
    required_machines_tools: List[MachineTool] = Field(default_factory=list)
    quality_specifications: List[QualitySpecification] = Field(default_factory=list)
    packing_labeling: Optional[PackingLabeling] = None


class RecipeDoc(_Doc):
    recipe_id: str = ""
    name: str = ""
    station: str = ""
    recipe_code: str = ""
    yield_: str = Field(default="", alias="yield")
    main_ingredients: List[MainIngredient] = Field(default_factory=list)
    sub_recipes: List[SubRecipe] = Field(default_factory=list)
    preparation: List[PreparationStep] = Field(default_factory=list)
    required_machines_tools: List[MachineTool] = Field(default_factory=list)
    quality_specifications: List[QualitySpecification] = Field(default_factory=list)
    packing_labeling: PackingLabeling = Field(default_factory=PackingLabeling)


class InstructionComponent(_Doc):
    sub_recipe_name: str = ""
    serving_per_portion: float = 0
    unit: str = ""
    reheating_steps: List[str] = Field(default_factory=list)
    quantity_control_notes: str = ""
    presentation_guidelines: str = ""

    @field_validator("serving_per_portion", mode="before")
    @classmethod
    def _serving(cls, v):
        return coerce_number(v)

    @field_validator("reheating_steps", mode="before")
    @classmethod
    def _steps(cls, v):
        return [s for s in (v or []) if s and str(s).strip()]

    @field_validator("quantity_control_notes", "presentation_guidelines", mode="before")
    @classmethod
    def _blank(cls, v):
        return v or ""


class InstructionDoc(_Doc):
    instruction_id: str = ""
    dish_name: str = ""
    category: str = "Main Course"
    components: List[InstructionComponent] = Field(default_factory=list)
    visual_presentation: List[Any] = Field(default_factory=list)
    branches: List[str] = Field(default_factory=list)
    suggested_recipe_id: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return v or "Main Course"


class ParsedInstructions(_Doc):
    instructions: List[InstructionDoc] = Field(default_factory=list)
    parsing_notes: str = ""
