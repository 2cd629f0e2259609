"""LLM-backed parsers that turn pasted spreadsheet text into recipe documents."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from branchops.core.ai.gateway import AIGatewayService
from branchops.core.ai.models import AIGatewayRequest
from branchops.core.errors import ValidationError
from branchops.core.recipes.schemas import ParsedInstructions, RecipeDoc
from branchops.core.recipes.service import slugify

log = logging.getLogger("branchops.recipes")

PARSER_MODEL = "gpt-4o"
MIN_INPUT_CHARS = 10

RECIPE_SYSTEM_PROMPT = """You are a data entry automation bot for a catering company's Central Kitchen.
Extract structured recipe data from raw Excel/CSV exports of recipe cards.

The recipe cards have these sections, with small layout variations:
- Section 1: Recipe Information (name, station, code, yield)
- Section 2A: Main Ingredients (final assembly)
- Sections 2B, 2C, 2D...: Sub-recipe ingredients (sauces, marinades, doughs)
- Section 3: Required Machines & Tools
- Section 4: Step-by-Step Cooking Process, possibly split into "Sub-Recipe: X" blocks and a main block
- Section 5: Quality Specifications
- Section 6: Packing & Labeling

Rules:
1. Every section 2B and later is its own sub-recipe.
2. Steps under "Sub-Recipe: X" belong to that sub-recipe; the rest are main preparation steps.
3. Quantities are numbers ("1,200.00" -> 1200).
4. subRecipeId is the lower-case hyphenated sub-recipe name.
5. Pull step times out of the text ("Cook for 5 minutes" -> "5 minutes").
6. Mark a step critical when it mentions temperature, safety, "must", "critical" or "important".

Return ONLY valid JSON. No markdown, no explanation, no code fences."""

RECIPE_SCHEMA_DESCRIPTION = """{
  "name": "string", "station": "string", "recipeCode": "string", "yield": "string, e.g. '1 KG'",
  "mainIngredients": [{"name": "string", "quantity": "number", "unit": "string", "specifications": "string"}],
  "subRecipes": [{"subRecipeId": "string", "name": "string", "yield": "string",
                  "ingredients": [{"item": "string", "quantity": "string", "unit": "string", "notes": "string"}],
                  "preparation": [{"step": "number", "instruction": "string", "time": "string",
                                   "critical": "boolean", "hint": "string"}]}],
  "preparation": [{"step": "number", "instruction": "string", "time": "string", "critical": "boolean", "hint": "string"}],
  "requiredMachinesTools": [{"name": "string", "setting": "string", "purpose": "string", "notes": "string"}],
  "qualitySpecifications": [{"parameter": "string", "appearance": "string", "texture": "string",
                             "tasteFlavorProfile": "string", "aroma": "string"}],
  "packingLabeling": {"packingType": "string", "labelRequirements": "string",
                      "storageCondition": "string", "shelfLife": "string"}
}"""

INSTRUCTION_SYSTEM_PROMPT = """You are a data entry automation bot for a catering company's branch operations.
Extract structured reheating and quality control guidelines from Excel exports.

Typical columns: Dish Name / Counter Price (often merged across rows), Sub-recipes,
Serving QTY per portion, Unit (Gr, Unit, Ml), Reheating / Cooking Procedures (one or more
step columns), Quantity Control Notes, Presentation Guidelines. Ignore image columns.

Rules:
1. Group all rows of the same dish (including merged cells) into one instruction.
2. A row with an empty dish name belongs to the dish above it.
3. Collect every non-empty reheating step column into reheatingSteps.
4. Serving quantities are numbers ("1,200" -> 1200).
5. Infer category: Main Course, Side, Appetizer, Dessert or Beverage.
6. Keep note text verbatim. Use "" for empty cells.
7. When a dish closely matches one of the available recipes, set suggestedRecipeId to its id.

Return ONLY valid JSON. No markdown, no explanation, no code fences."""

INSTRUCTION_SCHEMA_DESCRIPTION = """{
  "instructions": [{"dishName": "string", "category": "string", "suggestedRecipeId": "string",
                    "components": [{"subRecipeName": "string", "servingPerPortion": "number", "unit": "string",
                                    "reheatingSteps": ["string"], "quantityControlNotes": "string",
                                    "presentationGuidelines": "string"}]}],
  "parsingNotes": "string"
}"""


def prepare_raw_text(raw: str) -> str:
    return (raw or "").replace("\r\n", "\n").replace("\r", "\n").strip()


def _require_text(raw: str) -> str:
    text = prepare_raw_text(raw)
    if len(text) < MIN_INPUT_CHARS:
        raise ValidationError("Data is too short. Please paste at least one row of data from Excel.")
    return text


def _renumber(steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**s, "step": i} for i, s in enumerate(steps or [], start=1)]


def post_process_recipe(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Sequential step numbers, guaranteed subRecipeIds."""
    doc = dict(doc)
    doc["preparation"] = _renumber(doc.get("preparation") or [])
    subs = []
    for sub in doc.get("subRecipes") or []:
        sub = dict(sub)
        sub["subRecipeId"] = sub.get("subRecipeId") or slugify(sub.get("name", ""))
        sub["preparation"] = _renumber(sub.get("preparation") or [])
        subs.append(sub)
    doc["subRecipes"] = subs
    if not doc.get("recipeId") and doc.get("name"):
        doc["recipeId"] = slugify(doc["name"])
    return doc


def parse_recipe(raw: str, *, gateway: AIGatewayService | None = None) -> Dict[str, Any]:
    text = _require_text(raw)
    gateway = gateway or AIGatewayService()
    req = AIGatewayRequest(
        task="recipe_parse",
        model=PARSER_MODEL,
        system_prompt=RECIPE_SYSTEM_PROMPT,
        user_content=(
            "Parse the following recipe data and return structured JSON.\n\n"
            f"REQUIRED OUTPUT SCHEMA:\n{RECIPE_SCHEMA_DESCRIPTION}\n\n"
            f"RAW RECIPE DATA:\n{text}\n\n"
            "Return ONLY the JSON object, no additional text."
        ),
        json_mode=True,
        temperature=0,
    )
    data = gateway.complete_json(req, RecipeDoc)
    recipe = post_process_recipe(data)
    log.info(
        "recipe parsed name=%s sub_recipes=%d steps=%d",
        recipe.get("name"),
        len(recipe["subRecipes"]),
        len(recipe["preparation"]),
    )
    return recipe


def _recipe_list(recipes: Iterable[Dict[str, str]]) -> str:
    lines = [f'- {r["recipeId"]}: "{r["name"]}"' for r in recipes]
    if not lines:
        return "No recipes available for matching - leave suggestedRecipeId as empty string."
    return "AVAILABLE RECIPES FOR MATCHING:\n" + "\n".join(lines)


def parse_instructions(
    raw: str,
    available_recipes: Iterable[Dict[str, str]] = (),
    *,
    gateway: AIGatewayService | None = None,
) -> Dict[str, Any]:
    text = _require_text(raw)
    available = list(available_recipes)
    known_ids = {r["recipeId"] for r in available}
    gateway = gateway or AIGatewayService()
    req = AIGatewayRequest(
        task="instruction_parse",
        model=PARSER_MODEL,
        system_prompt=INSTRUCTION_SYSTEM_PROMPT,
        user_content=(
            "Parse the following reheating instructions data and return structured JSON.\n\n"
            f"REQUIRED OUTPUT SCHEMA:\n{INSTRUCTION_SCHEMA_DESCRIPTION}\n\n"
            f"{_recipe_list(available)}\n\n"
            f"RAW EXCEL DATA (tab-separated):\n{text}\n\n"
            "Return ONLY the JSON object, no additional text."
        ),
        json_mode=True,
        temperature=0,
    )
    data = gateway.complete_json(req, ParsedInstructions)

    instructions = []
    for item in data.get("instructions") or []:
        item = {k: v for k, v in item.items() if k not in ("createdAt", "updatedAt")}
        item["instructionId"] = item.get("instructionId") or slugify(item.get("dishName", ""))
        # drop suggestions that do not point at a stored recipe
        if item.get("suggestedRecipeId") and known_ids and item["suggestedRecipeId"] not in known_ids:
            item["suggestedRecipeId"] = ""
        instructions.append(item)

    log.info("instructions parsed count=%d", len(instructions))
    return {
        "success": True,
        "data": {"instructions": instructions, "parsingNotes": data.get("parsingNotes", "")},
        "instructionsCount": len(instructions),
    }
