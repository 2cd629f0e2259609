"""Recipe yield parsing and quantity scaling.

A yield is a free-text string such as ``"1 KG"``, ``"60 pieces"`` or
``"1 Pizza (23cm)"``. The leading number is the base value and the rest is
the unit. Scaling multiplies every ingredient quantity by
``desired / base``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Union

_YIELD_RE = re.compile(r"^([\d.]+)\s*(.*)$")


@dataclass(frozen=True)
class ParsedYield:
    value: float
    unit: str
    original: str


def parse_yield(text: str | None) -> ParsedYield:
    if not text:
        return ParsedYield(value=1, unit="", original="")
    trimmed = text.strip()
    m = _YIELD_RE.match(trimmed)
    if m:
        try:
            value = float(m.group(1))
        except ValueError:
            value = 1
        return ParsedYield(value=value, unit=m.group(2).strip() or "unit", original=trimmed)
    return ParsedYield(value=1, unit=trimmed, original=trimmed)


def calculate_multiplier(base: ParsedYield, target_value: float) -> float:
    if base.value == 0:
        return 1
    return target_value / base.value


def _to_float(quantity: Union[int, float, str, None]) -> float | None:
    if isinstance(quantity, (int, float)) and not isinstance(quantity, bool):
        return float(quantity)
    m = re.match(r"^\s*([-+]?\d*\.?\d+)", str(quantity or ""))
    return float(m.group(1)) if m else None


def scale_quantity(quantity: Union[int, float, str, None], multiplier: float) -> float:
    value = _to_float(quantity)
    if value is None:
        return 0
    # half-up, not banker's rounding
    return math.floor(value * multiplier * 100 + 0.5) / 100


def format_number(num: float | None) -> str:
    if num is None or num != num:
        return "0"
    if float(num).is_integer():
        return str(int(num))
    return f"{num:.2f}".rstrip("0").rstrip(".")


def format_multiplier(multiplier: float) -> str:
    if multiplier == 1:
        return ""
    return f"×{format_number(multiplier)}"


def format_scaled_yield(base: ParsedYield, target_value: float) -> str:
    return f"{format_number(target_value)} {base.unit}"


def _scale_rows(rows: List[Dict[str, Any]], multiplier: float, name_key: str) -> List[Dict[str, Any]]:
    out = []
    for row in rows or []:
        base = row.get("quantity")
        out.append(
            {
                name_key: row.get(name_key, ""),
                "unit": row.get("unit", ""),
                "baseQuantity": format_number(_to_float(base) or 0),
                "scaledQuantity": format_number(scale_quantity(base, multiplier)),
            }
        )
    return out


def scale_recipe(recipe: Dict[str, Any], desired_yield: float) -> Dict[str, Any]:
    """Scale a camelCase recipe document to ``desired_yield`` units of its main yield.

    Sub-recipes carry their own yield, so their ingredients are scaled by the
    same multiplier and their yield string is rescaled alongside.
    """
    base = parse_yield(recipe.get("yield"))
    multiplier = calculate_multiplier(base, desired_yield)

    sub_recipes = []
    for sub in recipe.get("subRecipes") or []:
        sub_base = parse_yield(sub.get("yield") or "1 KG")
        sub_recipes.append(
            {
                "subRecipeId": sub.get("subRecipeId", ""),
                "name": sub.get("name", ""),
                "baseYield": sub_base.original,
                "scaledYield": format_scaled_yield(sub_base, sub_base.value * multiplier),
                "ingredients": _scale_rows(sub.get("ingredients") or [], multiplier, "item"),
            }
        )

    return {
        "recipeId": recipe.get("recipeId", ""),
        "baseYield": base.original,
        "scaledYield": format_scaled_yield(base, desired_yield),
        "multiplier": multiplier,
        "multiplierLabel": format_multiplier(multiplier),
        "mainIngredients": _scale_rows(recipe.get("mainIngredients") or [], multiplier, "name"),
        "subRecipes": sub_recipes,
    }
