def test_seeded_branches_and_filters(client, as_role):
    headers = as_role("branch_staff", branches=["isc-dip"])

    body = client.get("/api/v1/branches", headers=headers).json()
    slugs = {b["slug"] for b in body["branches"]}
    assert {"isc-soufouh", "isc-dip", "central-kitchen"} <= slugs
    assert "Dubai" in body["locations"]
    assert body["locations"] == sorted(body["locations"])

    dubai = client.get("/api/v1/branches", params={"location": "Dubai"}, headers=headers).json()["branches"]
    assert dubai and all(b["location"] == "Dubai" for b in dubai)

    found = client.get("/api/v1/branches", params={"q": "aljada"}, headers=headers).json()["branches"]
    assert [b["slug"] for b in found] == ["isc-aljada"]

    everything = client.get("/api/v1/branches", params={"location": "all"}, headers=headers).json()["branches"]
    assert len(everything) == len(body["branches"])


def test_get_branch_returns_camel_case_document(client, admin_headers):
    r = client.get("/api/v1/branches/isc-dip", headers=admin_headers)
    assert r.status_code == 200
    doc = r.json()
    assert doc["name"] == "ISC DIP"
    assert doc["operatingHours"] == "06:30 - 15:00"
    assert set(doc["kpis"]) == {"salesTarget", "wastePct", "hygieneScore"}

    assert client.get("/api/v1/branches/nowhere", headers=admin_headers).status_code == 404


def test_branch_create_update_delete(client, admin_headers):
    r = client.post(
        "/api/v1/branches",
        json={
            "slug": "isc-test",
            "name": "ISC Test",
            "location": "Dubai",
            "manager": "Sam",
            "kpis": {"hygieneScore": "72 / 100"},
            "contacts": [{"name": "Sam", "phone": "050"}],
        },
        headers=admin_headers,
    )
    assert r.status_code == 201
    created = r.json()
    assert created["id"] == "13"
    assert created["contacts"][0]["role"] == ""

    assert client.post("/api/v1/branches", json={"slug": "isc-test", "name": "Again"}, headers=admin_headers).status_code == 409
    assert client.post("/api/v1/branches", json={"name": "No slug"}, headers=admin_headers).status_code == 400

    listing = client.get("/api/v1/branches", headers=admin_headers).json()
    assert listing["managers"] == ["Sam"]

    filtered = client.get("/api/v1/branches", params={"min_hygiene_score": 80}, headers=admin_headers).json()
    assert "isc-test" not in {b["slug"] for b in filtered["branches"]}

    r = client.put("/api/v1/branches/isc-test", json={"manager": "Alex", "slug": "ignored"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["manager"] == "Alex"
    assert r.json()["slug"] == "isc-test"
    assert r.json()["location"] == "Dubai"

    assert client.delete("/api/v1/branches/isc-test", headers=admin_headers).status_code == 200
    assert client.get("/api/v1/branches/isc-test", headers=admin_headers).status_code == 404


def test_role_guides(client, as_role):
    headers = as_role("branch_manager", branches=["isc-dip"])

    roles = client.get("/api/v1/roles", headers=headers).json()["roles"]
    ids = {r["roleId"] for r in roles}
    assert {"branch-manager", "branch-staff"} <= ids

    guide = client.get("/api/v1/roles/branch-manager", headers=headers).json()
    assert guide["dailyFlow"]["morning"][0]["time"] == "06:30"
    assert guide["checklists"]["opening"][0]["critical"] is True

    missing = client.get("/api/v1/roles/chef", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Role not found"
