import pytest

from branchops.core.recipes.yield_scaling import (
    format_multiplier,
    format_number,
    parse_yield,
    scale_quantity,
    scale_recipe,
)


@pytest.mark.parametrize(
    "text,value,unit",
    [
        ("1 KG", 1.0, "KG"),
        ("60 pieces", 60.0, "pieces"),
        ("1 Pizza (23cm)", 1.0, "Pizza (23cm)"),
        ("2.5KG", 2.5, "KG"),
        ("12", 12.0, "unit"),
        ("Tray", 1, "Tray"),
    ],
)
def test_parse_yield(text, value, unit):
    parsed = parse_yield(text)
    assert parsed.value == value
    assert parsed.unit == unit
    assert parsed.original == text


def test_parse_yield_empty():
    parsed = parse_yield("")
    assert (parsed.value, parsed.unit, parsed.original) == (1, "", "")
    assert parse_yield(None).value == 1


def test_scale_quantity_rounds_half_up():
    assert scale_quantity(0.125, 1) == 0.13
    assert scale_quantity(400, 2.5) == 1000
    assert scale_quantity("250 gm", 2) == 500
    assert scale_quantity("to taste", 2) == 0
    assert scale_quantity(None, 2) == 0


def test_format_helpers():
    assert format_number(2.0) == "2"
    assert format_number(1.5) == "1.5"
    assert format_number(1.234) == "1.23"
    assert format_number(None) == "0"
    assert format_multiplier(1) == ""
    assert format_multiplier(2) == "×2"
    assert format_multiplier(0.5) == "×0.5"


def test_scale_recipe_scales_main_and_sub_recipes():
    doc = {
        "recipeId": "chicken-biryani",
        "yield": "2 KG",
        "mainIngredients": [
            {"name": "Basmati rice", "quantity": 400, "unit": "GM"},
            {"name": "Chicken thigh", "quantity": 1.2, "unit": "KG"},
        ],
        "subRecipes": [
            {
                "subRecipeId": "biryani-masala",
                "name": "Biryani masala",
                "yield": "1 KG",
                "ingredients": [{"item": "Onion", "quantity": "200", "unit": "GM"}],
            }
        ],
    }

    out = scale_recipe(doc, 5)

    assert out["recipeId"] == "chicken-biryani"
    assert out["baseYield"] == "2 KG"
    assert out["scaledYield"] == "5 KG"
    assert out["multiplier"] == 2.5
    assert out["multiplierLabel"] == "×2.5"
    assert out["mainIngredients"][0] == {
        "name": "Basmati rice",
        "unit": "GM",
        "baseQuantity": "400",
        "scaledQuantity": "1000",
    }
    assert out["mainIngredients"][1]["scaledQuantity"] == "3"

    sub = out["subRecipes"][0]
    assert sub["subRecipeId"] == "biryani-masala"
    assert sub["baseYield"] == "1 KG"
    assert sub["scaledYield"] == "2.5 KG"
    assert sub["ingredients"][0]["item"] == "Onion"
    assert sub["ingredients"][0]["scaledQuantity"] == "500"


def test_scale_recipe_same_yield_has_no_label():
    out = scale_recipe({"recipeId": "x", "yield": "1 KG", "mainIngredients": []}, 1)
    assert out["multiplier"] == 1
    assert out["multiplierLabel"] == ""
    assert out["subRecipes"] == []
