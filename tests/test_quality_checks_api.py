import pytest

from branchops.core.quality.service import unread_feedback_count

BASE = "/api/v1/quality-checks"

CHECK = {
    "branchSlug": "isc-dip",
    "mealService": "lunch",
    "productName": "Chicken Biryani",
    "section": "Hot",
    "tasteScore": 4,
    "appearanceScore": 5,
    "portionQtyGm": 250,
    "tempCelsius": 65,
    "remarks": "Good colour",
}


@pytest.fixture()
def manager(make_user):
    return make_user("branch_manager", branches=["isc-dip"])


@pytest.fixture()
def manager_headers(manager, headers_for):
    return headers_for(manager)


def _submit(client, headers, **overrides):
    return client.post(BASE, json=dict(CHECK, **overrides), headers=headers)


def test_submit_quality_check(client, manager, manager_headers, admin_headers):
    r = _submit(client, manager_headers)
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Quality check submitted successfully"

    doc = client.get(f"{BASE}/{body['id']}", headers=admin_headers).json()
    assert doc["submittedBy"] == manager.id
    assert doc["submitterName"] == manager.full_name
    assert doc["submitterEmail"] == manager.email
    assert doc["branchName"] == "ISC DIP"
    assert doc["status"] == "submitted"
    assert doc["portionQtyGm"] == 250
    assert doc["photos"] == []


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"productName": ""}, "Missing required field: productName"),
        ({"tempCelsius": None}, "Missing required field: tempCelsius"),
        ({"mealService": "dinner"}, "Invalid meal service. Must be breakfast or lunch"),
        ({"tasteScore": 6}, "Taste score must be between 1 and 5"),
        ({"appearanceScore": "great"}, "Appearance score must be between 1 and 5"),
    ],
)
def test_submit_validation(client, manager_headers, overrides, message):
    r = _submit(client, manager_headers, **overrides)
    assert r.status_code == 400
    assert r.json()["detail"] == message


def test_submit_access(client, manager_headers, as_role):
    assert _submit(client, manager_headers, branchSlug="isc-rak").status_code == 403
    assert _submit(client, as_role("dispatcher")).status_code == 403
    assert _submit(client, as_role("central_kitchen")).status_code == 403
    # global roles may submit for any branch
    assert _submit(client, as_role("operations_lead"), branchSlug="isc-rak").status_code == 201


def test_list_visibility_and_filters(client, manager_headers, admin_headers, as_role):
    _submit(client, manager_headers)
    _submit(client, manager_headers, mealService="breakfast", section="Bakery", productName="Croissant")
    _submit(client, admin_headers, branchSlug="isc-rak", productName="Pasta")

    mine = client.get(BASE, headers=manager_headers).json()["checks"]
    assert {c["productName"] for c in mine} == {"Chicken Biryani", "Croissant"}

    everything = client.get(BASE, headers=admin_headers).json()["checks"]
    assert len(everything) == 3
    assert everything[0]["productName"] == "Pasta"

    breakfast = client.get(BASE, params={"mealService": "breakfast"}, headers=admin_headers).json()["checks"]
    assert [c["productName"] for c in breakfast] == ["Croissant"]
    hot = client.get(BASE, params={"section": "Hot", "branch": "isc-dip"}, headers=admin_headers).json()["checks"]
    assert [c["productName"] for c in hot] == ["Chicken Biryani"]
    paged = client.get(BASE, params={"limit": 1, "offset": 1}, headers=admin_headers).json()["checks"]
    assert len(paged) == 1

    assert client.get(BASE, headers=as_role("dispatcher")).json()["checks"] == []
    assert client.get(BASE, headers=as_role("branch_staff", branches=["isc-ajman"])).json()["checks"] == []


def test_date_range_includes_end_date(client, manager_headers, admin_headers):
    _submit(client, manager_headers)
    today = client.get(BASE, headers=admin_headers).json()["checks"][0]["submissionDate"][:10]

    same_day = client.get(BASE, params={"startDate": today, "endDate": today}, headers=admin_headers)
    assert len(same_day.json()["checks"]) == 1
    assert client.get(BASE, params={"startDate": "soon"}, headers=admin_headers).status_code == 400


def test_get_check_enforces_branch_access(client, manager_headers, as_role):
    check_id = _submit(client, manager_headers).json()["id"]
    r = client.get(f"{BASE}/{check_id}", headers=as_role("branch_staff", branches=["isc-rak"]))
    assert r.status_code == 403
    assert client.get(f"{BASE}/999", headers=manager_headers).status_code == 404


def test_review_and_delete(client, manager_headers, admin_headers, as_role):
    check_id = _submit(client, manager_headers).json()["id"]

    r = client.put(f"{BASE}/{check_id}", json={"status": "flagged", "adminNotes": "Too salty"}, headers=admin_headers)
    assert r.json() == {"success": True, "message": "Quality check updated"}
    doc = client.get(f"{BASE}/{check_id}", headers=admin_headers).json()
    assert doc["status"] == "flagged"
    assert doc["adminNotes"] == "Too salty"
    assert doc["reviewedAt"] is not None

    assert client.put(f"{BASE}/{check_id}", json={"status": "lost"}, headers=admin_headers).status_code == 400
    assert client.put(f"{BASE}/{check_id}", json={"status": "reviewed"}, headers=manager_headers).status_code == 403

    assert client.delete(f"{BASE}/{check_id}", headers=as_role("operations_lead")).status_code == 403
    assert client.delete(f"{BASE}/{check_id}", headers=admin_headers).status_code == 200
    assert client.get(f"{BASE}/{check_id}", headers=admin_headers).status_code == 404


def test_feedback_flow(client, db, manager, manager_headers, as_role):
    check_id = _submit(client, manager_headers).json()["id"]
    lead = as_role("operations_lead")

    r = client.post(f"{BASE}/{check_id}/feedback", json={"feedbackText": "  Reduce the salt  "}, headers=lead)
    assert r.status_code == 201
    fb = r.json()["feedback"]
    assert fb["feedbackText"] == "Reduce the salt"
    assert fb["feedbackByRole"] == "operations_lead"
    assert fb["isRead"] is False

    assert unread_feedback_count(db, manager.id) == 1

    notes = client.get("/api/v1/notifications", headers=manager_headers).json()["notifications"]
    assert notes[0]["title"] == "Feedback on your Chicken Biryani quality check"
    assert notes[0]["metadata"] == {"qualityCheckId": check_id, "feedbackId": fb["id"]}

    denied = client.post(f"{BASE}/{check_id}/feedback", json={"feedbackText": "nice"}, headers=manager_headers)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Only managers can provide feedback"
    assert client.post(f"{BASE}/{check_id}/feedback", json={"feedbackText": " "}, headers=lead).status_code == 400

    listing = client.get(f"{BASE}/{check_id}/feedback", headers=manager_headers).json()["feedback"]
    assert [f["id"] for f in listing] == [fb["id"]]
    other = as_role("branch_manager", branches=["isc-dip"])
    assert client.get(f"{BASE}/{check_id}/feedback", headers=other).status_code == 403

    assert client.post(f"{BASE}/{check_id}/feedback/{fb['id']}/read", headers=lead).status_code == 403
    r = client.post(f"{BASE}/{check_id}/feedback/{fb['id']}/read", headers=manager_headers)
    assert r.json()["feedback"]["isRead"] is True
    assert client.post(f"{BASE}/{check_id}/feedback/999/read", headers=manager_headers).status_code == 404

    db.expire_all()
    assert unread_feedback_count(db, manager.id) == 0
