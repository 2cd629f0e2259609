from datetime import timedelta

from branchops.core.db.base import utc_now
from branchops.core.db.models import Notification
from branchops.core.notifications.composer_ai import post_process


def _post(client, headers, **overrides):
    body = {
        "type": "announcement",
        "title": "Ramadan timings",
        "preview": "New delivery windows from Monday",
        "content": "## Ramadan timings\n\nDeliveries move to 09:00.",
    }
    body.update(overrides)
    return client.post("/api/v1/notifications", json=body, headers=headers)


def test_create_and_list_with_unread_count(client, admin_headers, as_role):
    r = _post(client, admin_headers)
    assert r.status_code == 201
    created = r.json()["notification"]
    assert created["type"] == "announcement"
    assert created["target_roles"] is None

    staff = as_role("branch_staff", branches=["isc-dip"])
    listing = client.get("/api/v1/notifications", headers=staff).json()
    assert [n["id"] for n in listing["notifications"]] == [created["id"]]
    assert listing["unread_count"] == 1

    assert client.post(f"/api/v1/notifications/{created['id']}/read", headers=staff).status_code == 200
    # marking twice is harmless
    assert client.post(f"/api/v1/notifications/{created['id']}/read", headers=staff).status_code == 200

    listing = client.get("/api/v1/notifications", headers=staff).json()
    assert listing["unread_count"] == 0
    assert listing["notifications"][0]["is_read"] is True


def test_mark_read_unknown_notification_is_404(client, admin_headers):
    assert client.post("/api/v1/notifications/999/read", headers=admin_headers).status_code == 404


def test_targeted_notifications_and_urgent_first(client, admin_headers, as_role):
    normal = _post(client, admin_headers).json()["notification"]
    kitchen_only = _post(
        client, admin_headers, title="Oven maintenance", target_roles=["central_kitchen"]
    ).json()["notification"]
    urgent = _post(client, admin_headers, type="urgent", priority="urgent", title="Gas leak drill").json()[
        "notification"
    ]

    kitchen = client.get("/api/v1/notifications", headers=as_role("central_kitchen")).json()["notifications"]
    assert [n["id"] for n in kitchen][0] == urgent["id"]
    assert {n["id"] for n in kitchen} == {normal["id"], kitchen_only["id"], urgent["id"]}

    manager = client.get(
        "/api/v1/notifications", headers=as_role("branch_manager", branches=["isc-rak"])
    ).json()["notifications"]
    assert kitchen_only["id"] not in {n["id"] for n in manager}


def test_signup_notification_reaches_admins_only(client, admin_headers, as_role):
    client.post(
        "/api/v1/auth/signup",
        json={"email": "jo@example.com", "password": "secret123", "firstName": "Jo", "lastName": "Doe"},
    )
    admin_view = client.get("/api/v1/notifications", headers=admin_headers).json()["notifications"]
    assert [n["type"] for n in admin_view] == ["user_signup"]

    dispatcher_view = client.get("/api/v1/notifications", headers=as_role("dispatcher")).json()["notifications"]
    assert dispatcher_view == []


def test_create_validates_type_priority_and_role(client, admin_headers, as_role):
    assert _post(client, admin_headers, type="gossip").status_code == 400
    assert _post(client, admin_headers, priority="high").status_code == 400
    assert _post(client, admin_headers, title="").status_code == 400
    assert _post(client, as_role("dispatcher")).status_code == 403


def test_deactivate_hides_notification(client, admin_headers):
    n = _post(client, admin_headers).json()["notification"]
    assert client.delete(f"/api/v1/notifications/{n['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/v1/notifications", headers=admin_headers).json()["notifications"] == []



def test_expired_notifications_drop_out_of_listing(client, db, admin_headers):
    stale = _post(client, admin_headers, title="Old menu").json()["notification"]
    fresh = _post(client, admin_headers, title="New menu").json()["notification"]

    row = db.get(Notification, stale["id"])
    row.expires_at = utc_now() - timedelta(minutes=1)
    db.commit()

    listing = client.get("/api/v1/notifications", headers=admin_headers).json()
    assert [n["id"] for n in listing["notifications"]] == [fresh["id"]]
    assert listing["unread_count"] == 1

def test_post_process_clamps_and_filters():
    draft = post_process(
        {
            "type": "alert",
            "priority": "normal",
            "title": "T" * 120,
            "preview": "P" * 200,
            "content": "## Body",
            "expires_in_days": 90,
            "target_roles": ["Branch_Manager", "chef"],
        }
    )
    assert len(draft["title"]) == 100 and draft["title"].endswith("...")
    assert len(draft["preview"]) == 150 and draft["preview"].endswith("...")
    assert draft["expires_in_days"] == 30
    assert draft["target_roles"] == ["branch_manager"]

    draft = post_process(
        {"type": "alert", "title": "x", "preview": "y", "content": "z", "expires_in_days": 0, "target_roles": ["chef"]}
    )
    assert draft["expires_in_days"] == 1
    assert draft["target_roles"] is None


def test_compose_ai_returns_processed_draft(client, admin_headers, use_llm):
    stub = use_llm(
        {
            "type": "announcement",
            "priority": "urgent",
            "title": "Kitchen closed Friday",
            "preview": "The central kitchen is closed on Friday for deep cleaning",
            "content": "## Kitchen closed\n\n**Friday** deep clean.",
            "expires_in_days": 45,
            "target_roles": ["central_kitchen", "dispatcher"],
        }
    )
    r = client.post(
        "/api/v1/notifications/compose-ai",
        json={"prompt": "urgent: kitchen closed friday for cleaning"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    draft = r.json()["notification"]
    assert draft["priority"] == "urgent"
    assert draft["expires_in_days"] == 30
    assert draft["target_roles"] == ["central_kitchen", "dispatcher"]
    assert stub.calls[0]["task"] == "notification_compose"
    assert "kitchen closed friday" in stub.calls[0]["user_content"]


def test_compose_ai_retries_invalid_json_once(client, admin_headers, use_llm):
    stub = use_llm(
        "not json at all",
        {"type": "patch", "title": "Fix", "preview": "Fixed", "content": "## Fix", "expires_in_days": 3},
    )
    r = client.post("/api/v1/notifications/compose-ai", json={"prompt": "we fixed the CSV export"}, headers=admin_headers)
    assert r.status_code == 200
    assert len(stub.calls) == 2


def test_compose_ai_errors(client, admin_headers, use_llm):
    r = client.post("/api/v1/notifications/compose-ai", json={"prompt": "  "}, headers=admin_headers)
    assert r.status_code == 400

    use_llm({"type": "gossip", "title": "x", "preview": "y", "content": "z"})
    r = client.post("/api/v1/notifications/compose-ai", json={"prompt": "anything"}, headers=admin_headers)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "ai_output_validation_failed"


def test_compose_ai_without_api_key_is_503(client, admin_headers):
    r = client.post("/api/v1/notifications/compose-ai", json={"prompt": "anything"}, headers=admin_headers)
    assert r.status_code == 503
