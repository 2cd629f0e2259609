from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchops.core.db.base import iso, utc_now
from branchops.core.db.models import Recipe, RecipeInstruction
from branchops.core.errors import ConflictError, NotFoundError, ValidationError
from branchops.core.recipes.schemas import InstructionDoc, RecipeDoc

log = logging.getLogger("branchops.recipes")


def slugify(text: str) -> str:
    """Lower-case hyphen slug: "Sauce Tomato 1 KG" -> "sauce-tomato-1-kg"."""
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


# ------------------------------------------------------------
# Recipes
# ------------------------------------------------------------
def recipe_to_doc(recipe: Recipe) -> Dict[str, Any]:
    return dict(recipe.document or {})


def list_recipes(db: Session) -> List[Dict[str, Any]]:
    return [recipe_to_doc(r) for r in db.scalars(select(Recipe).order_by(Recipe.name))]


def _get_recipe(db: Session, recipe_id: str) -> Recipe:
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        raise NotFoundError("Recipe not found")
    return recipe


def get_recipe(db: Session, recipe_id: str) -> Dict[str, Any]:
    return recipe_to_doc(_get_recipe(db, recipe_id))


def recipe_index(db: Session) -> List[Dict[str, str]]:
    return [{"recipeId": rid, "name": name} for rid, name in db.execute(select(Recipe.recipe_id, Recipe.name))]


def _store_recipe(recipe: Recipe, doc: RecipeDoc) -> None:
    recipe.name = doc.name
    recipe.station = doc.station
    recipe.document = doc.model_dump(by_alias=True)


def create_recipe(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    doc = RecipeDoc.model_validate(payload or {})
    if not doc.recipe_id or not doc.name:
        raise ValidationError("Missing required fields: recipeId, name")
    if db.get(Recipe, doc.recipe_id) is not None:
        raise ConflictError("Recipe ID already exists")

    recipe = Recipe(recipe_id=doc.recipe_id)
    _store_recipe(recipe, doc)
    db.add(recipe)
    db.commit()
    log.info("recipe created id=%s", recipe.recipe_id)
    return recipe_to_doc(recipe)


def update_recipe(db: Session, recipe_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    recipe = _get_recipe(db, recipe_id)
    merged = {**recipe_to_doc(recipe), **(changes or {}), "recipeId": recipe_id}
    _store_recipe(recipe, RecipeDoc.model_validate(merged))
    db.commit()
    return recipe_to_doc(recipe)


def delete_recipe(db: Session, recipe_id: str) -> None:
    db.delete(_get_recipe(db, recipe_id))
    db.commit()
    log.info("recipe deleted id=%s", recipe_id)


# ------------------------------------------------------------
# Recipe instructions (reheating)
# ------------------------------------------------------------
def instruction_to_doc(row: RecipeInstruction) -> Dict[str, Any]:
    doc = dict(row.document or {})
    doc["createdAt"] = iso(row.created_at)
    doc["updatedAt"] = iso(row.updated_at)
    return doc


def list_instructions(db: Session, *, branch: str | None = None) -> List[Dict[str, Any]]:
    rows = db.scalars(select(RecipeInstruction).order_by(RecipeInstruction.dish_name))
    docs = [instruction_to_doc(r) for r in rows]
    if branch:
        # an empty branches list means the dish is served everywhere
        docs = [d for d in docs if not d.get("branches") or branch in d["branches"]]
    return docs


def _get_instruction(db: Session, instruction_id: str) -> RecipeInstruction:
    row = db.get(RecipeInstruction, instruction_id)
    if row is None:
        raise NotFoundError("Instruction not found")
    return row


def get_instruction(db: Session, instruction_id: str) -> Dict[str, Any]:
    return instruction_to_doc(_get_instruction(db, instruction_id))


def _store_instruction(row: RecipeInstruction, doc: InstructionDoc) -> None:
    row.dish_name = doc.dish_name
    row.category = doc.category
    row.document = doc.model_dump(by_alias=True, exclude={"created_at", "updated_at"})


def create_instruction(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    doc = InstructionDoc.model_validate(payload or {})
    if not doc.dish_name:
        raise ValidationError("Missing required fields: dishName")
    if not doc.instruction_id:
        doc.instruction_id = slugify(doc.dish_name)
    if db.get(RecipeInstruction, doc.instruction_id) is not None:
        raise ConflictError("Instruction with this ID already exists")

    row = RecipeInstruction(instruction_id=doc.instruction_id, created_at=utc_now())
    _store_instruction(row, doc)
    db.add(row)
    db.commit()
    log.info("instruction created id=%s", row.instruction_id)
    return instruction_to_doc(row)


def update_instruction(db: Session, instruction_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    row = _get_instruction(db, instruction_id)
    merged = {**(row.document or {}), **(changes or {}), "instructionId": instruction_id}
    _store_instruction(row, InstructionDoc.model_validate(merged))
    row.updated_at = utc_now()
    db.commit()
    return instruction_to_doc(row)


def delete_instruction(db: Session, instruction_id: str) -> None:
    db.delete(_get_instruction(db, instruction_id))
    db.commit()
