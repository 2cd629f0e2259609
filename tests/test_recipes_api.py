from branchops.core.recipes.parser_ai import post_process_recipe
from branchops.core.recipes.service import slugify

RECIPE = {
    "recipeId": "tomato-sauce",
    "name": "Tomato Sauce",
    "station": "Hot Section",
    "yield": "1 KG",
    "mainIngredients": [{"name": "Tomato", "quantity": "1,200.00", "unit": "GM"}],
    "subRecipes": [
        {
            "subRecipeId": "sofrito",
            "name": "Sofrito",
            "yield": "500 GM",
            "ingredients": [{"item": "Onion", "quantity": 250.0, "unit": "GM"}],
        }
    ],
}


def test_recipe_crud_and_scale(client, as_role):
    kitchen = as_role("central_kitchen")

    r = client.post("/api/v1/recipes", json=RECIPE, headers=kitchen)
    assert r.status_code == 201
    doc = r.json()
    assert doc["mainIngredients"][0]["quantity"] == 1200
    assert doc["subRecipes"][0]["ingredients"][0]["quantity"] == "250"
    assert doc["yield"] == "1 KG"

    assert client.post("/api/v1/recipes", json=RECIPE, headers=kitchen).status_code == 409

    listing = client.get("/api/v1/recipes", headers=kitchen).json()
    assert [d["recipeId"] for d in listing] == ["tomato-sauce"]

    r = client.get("/api/v1/recipes/tomato-sauce/scale", params={"desiredYield": 3}, headers=kitchen)
    assert r.status_code == 200
    scaled = r.json()
    assert scaled["scaledYield"] == "3 KG"
    assert scaled["mainIngredients"][0]["scaledQuantity"] == "3600"
    assert scaled["subRecipes"][0]["scaledYield"] == "1500 GM"

    assert client.get("/api/v1/recipes/tomato-sauce/scale", params={"desiredYield": 0}, headers=kitchen).status_code == 422

    r = client.put("/api/v1/recipes/tomato-sauce", json={"station": "Pantry"}, headers=kitchen)
    assert r.json()["station"] == "Pantry"
    assert r.json()["name"] == "Tomato Sauce"

    assert client.delete("/api/v1/recipes/tomato-sauce", headers=kitchen).status_code == 200
    assert client.get("/api/v1/recipes/tomato-sauce", headers=kitchen).status_code == 404


def test_recipe_requires_id_and_name(client, admin_headers):
    r = client.post("/api/v1/recipes", json={"name": "Nameless"}, headers=admin_headers)
    assert r.status_code == 400
    assert "recipeId" in r.json()["detail"]


def test_branch_staff_cannot_write_recipes(client, as_role):
    staff = as_role("branch_staff", branches=["isc-dip"])
    assert client.post("/api/v1/recipes", json=RECIPE, headers=staff).status_code == 403
    assert client.get("/api/v1/recipes", headers=staff).status_code == 200


def test_instructions_crud_and_branch_filter(client, as_role):
    kitchen = as_role("central_kitchen")

    r = client.post(
        "/api/v1/recipe-instructions",
        json={
            "dishName": "Butter Chicken",
            "category": "",
            "components": [
                {
                    "subRecipeName": "Gravy",
                    "servingPerPortion": "120",
                    "unit": "Gr",
                    "reheatingSteps": ["Heat to 75C", "", "Stir"],
                    "quantityControlNotes": None,
                }
            ],
            "branches": ["isc-dip"],
        },
        headers=kitchen,
    )
    assert r.status_code == 201
    doc = r.json()
    assert doc["instructionId"] == "butter-chicken"
    assert doc["category"] == "Main Course"
    assert doc["components"][0]["servingPerPortion"] == 120
    assert doc["components"][0]["reheatingSteps"] == ["Heat to 75C", "Stir"]
    assert doc["createdAt"].endswith("Z")

    client.post("/api/v1/recipe-instructions", json={"dishName": "Fruit Salad"}, headers=kitchen)

    dup = client.post("/api/v1/recipe-instructions", json={"dishName": "Butter Chicken"}, headers=kitchen)
    assert dup.status_code == 409

    missing = client.post("/api/v1/recipe-instructions", json={"category": "Side"}, headers=kitchen)
    assert missing.status_code == 400

    dip = client.get("/api/v1/recipe-instructions", params={"branch": "isc-dip"}, headers=kitchen).json()
    assert [d["dishName"] for d in dip] == ["Butter Chicken", "Fruit Salad"]
    rak = client.get("/api/v1/recipe-instructions", params={"branch": "isc-rak"}, headers=kitchen).json()
    assert [d["dishName"] for d in rak] == ["Fruit Salad"]

    r = client.put("/api/v1/recipe-instructions/butter-chicken", json={"category": "Side"}, headers=kitchen)
    assert r.json()["category"] == "Side"
    assert r.json()["dishName"] == "Butter Chicken"

    assert client.delete("/api/v1/recipe-instructions/butter-chicken", headers=kitchen).status_code == 200
    assert client.get("/api/v1/recipe-instructions/butter-chicken", headers=kitchen).status_code == 404


def test_slugify():
    assert slugify("Sauce Tomato 1 KG") == "sauce-tomato-1-kg"
    assert slugify("  Mac & Cheese!! ") == "mac-cheese"


def test_post_process_recipe_renumbers_and_fills_ids():
    doc = post_process_recipe(
        {
            "name": "Chicken Shawarma",
            "preparation": [{"step": 4, "instruction": "Marinate"}, {"step": 9, "instruction": "Grill"}],
            "subRecipes": [{"subRecipeId": "", "name": "Garlic Sauce", "preparation": [{"step": 3}]}],
        }
    )
    assert [s["step"] for s in doc["preparation"]] == [1, 2]
    assert doc["subRecipes"][0]["subRecipeId"] == "garlic-sauce"
    assert doc["subRecipes"][0]["preparation"][0]["step"] == 1
    assert doc["recipeId"] == "chicken-shawarma"


def test_parse_ai_endpoint(client, as_role, use_llm):
    stub = use_llm(
        {
            "name": "Chicken Shawarma",
            "station": "Butchery",
            "yield": "1 KG",
            "mainIngredients": [{"name": "Chicken", "quantity": "1,000", "unit": "GM"}],
            "preparation": [{"step": 5, "instruction": "Grill at 200C", "critical": True}],
        }
    )
    r = client.post(
        "/api/v1/recipes/parse-ai",
        json={"rawText": "Recipe Name\tChicken Shawarma\nYield\t1 KG"},
        headers=as_role("central_kitchen"),
    )
    assert r.status_code == 200
    recipe = r.json()["recipe"]
    assert recipe["recipeId"] == "chicken-shawarma"
    assert recipe["mainIngredients"][0]["quantity"] == 1000
    assert recipe["preparation"][0]["step"] == 1
    assert stub.calls[0]["task"] == "recipe_parse"

    short = client.post("/api/v1/recipes/parse-ai", json={"rawText": "abc"}, headers=as_role("central_kitchen"))
    assert short.status_code == 400


def test_parse_instructions_drops_unknown_recipe_suggestions(client, admin_headers, use_llm):
    client.post("/api/v1/recipes", json=RECIPE, headers=admin_headers)
    use_llm(
        {
            "instructions": [
                {"dishName": "Pasta Arrabbiata", "suggestedRecipeId": "tomato-sauce", "components": []},
                {"dishName": "Ghost Dish", "suggestedRecipeId": "does-not-exist", "components": []},
            ],
            "parsingNotes": "two dishes",
        }
    )
    r = client.post(
        "/api/v1/recipe-instructions/parse-ai",
        json={"rawText": "Dish Name\tSub-recipes\nPasta\tSauce"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["instructionsCount"] == 2
    first, second = body["data"]["instructions"]
    assert first["instructionId"] == "pasta-arrabbiata"
    assert first["suggestedRecipeId"] == "tomato-sauce"
    assert second["suggestedRecipeId"] == ""
    assert body["data"]["parsingNotes"] == "two dishes"
