from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from branchops.api.deps import get_ai_gateway, get_db, service_errors
from branchops.api.endpoints._bodies import CamelBody
from branchops.core.ai.gateway import AIGatewayService
from branchops.core.recipes import parser_ai
from branchops.core.recipes import service as recipes
from branchops.core.recipes.yield_scaling import scale_recipe

router = APIRouter(tags=["recipes"])


class ParseBody(CamelBody):
    raw_text: str = ""


# ------------------------------------------------------------
# Recipes
# ------------------------------------------------------------
@router.get("/recipes")
def list_recipes(db: Session = Depends(get_db)):
    return recipes.list_recipes(db)


@router.post("/recipes/parse-ai")
def parse_recipe(body: ParseBody, gateway: AIGatewayService = Depends(get_ai_gateway)):
    with service_errors():
        recipe = parser_ai.parse_recipe(body.raw_text, gateway=gateway)
    return {"success": True, "recipe": recipe}


@router.get("/recipes/{recipe_id}")
def get_recipe(recipe_id: str, db: Session = Depends(get_db)):
    with service_errors():
        return recipes.get_recipe(db, recipe_id)


@router.get("/recipes/{recipe_id}/scale")
def scale(recipe_id: str, desired_yield: float = Query(gt=0, alias="desiredYield"), db: Session = Depends(get_db)):
    with service_errors():
        return scale_recipe(recipes.get_recipe(db, recipe_id), desired_yield)


@router.post("/recipes", status_code=201)
def create_recipe(body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return recipes.create_recipe(db, body)


@router.put("/recipes/{recipe_id}")
def update_recipe(recipe_id: str, body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return recipes.update_recipe(db, recipe_id, body)


@router.delete("/recipes/{recipe_id}")
def delete_recipe(recipe_id: str, db: Session = Depends(get_db)):
    with service_errors():
        recipes.delete_recipe(db, recipe_id)
    return {"success": True}


# ------------------------------------------------------------
# Reheating instructions
# ------------------------------------------------------------
@router.get("/recipe-instructions")
def list_instructions(branch: Optional[str] = None, db: Session = Depends(get_db)):
    return recipes.list_instructions(db, branch=branch)


@router.post("/recipe-instructions/parse-ai")
def parse_instructions(
    body: ParseBody,
    db: Session = Depends(get_db),
    gateway: AIGatewayService = Depends(get_ai_gateway),
):
    with service_errors():
        return parser_ai.parse_instructions(body.raw_text, recipes.recipe_index(db), gateway=gateway)


@router.get("/recipe-instructions/{instruction_id}")
def get_instruction(instruction_id: str, db: Session = Depends(get_db)):
    with service_errors():
        return recipes.get_instruction(db, instruction_id)


@router.post("/recipe-instructions", status_code=201)
def create_instruction(body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return recipes.create_instruction(db, body)


@router.put("/recipe-instructions/{instruction_id}")
def update_instruction(instruction_id: str, body: Dict[str, Any], db: Session = Depends(get_db)):
    with service_errors():
        return recipes.update_instruction(db, instruction_id, body)


@router.delete("/recipe-instructions/{instruction_id}")
def delete_instruction(instruction_id: str, db: Session = Depends(get_db)):
    with service_errors():
        recipes.delete_instruction(db, instruction_id)
    return {"success": True}
