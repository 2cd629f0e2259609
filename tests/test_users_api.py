from branchops.core.db.models import Notification, User


def _signup(client, email="new.hire@example.com"):
    return client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": "secret123", "firstName": "New", "lastName": "Hire"},
    )


def test_signup_creates_pending_user_and_admin_notification(client, db):
    r = _signup(client)
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    user_id = body["userId"]

    user = db.get(User, user_id)
    assert user.status == "pending"
    assert user.role is None

    notes = db.query(Notification).filter_by(type="user_signup", related_user_id=user_id).all()
    assert len(notes) == 1
    assert notes[0].target_roles == ["admin"]
    assert notes[0].priority == "urgent"

    dup = _signup(client)
    assert dup.status_code == 409


def test_signup_validates_password_length(client):
    r = client.post(
        "/api/v1/auth/signup",
        json={"email": "a@example.com", "password": "123", "firstName": "A", "lastName": "B"},
    )
    assert r.status_code == 400
    assert "at least 6" in r.json()["detail"]


def test_approve_assigns_role_branches_and_clears_signup_notification(client, db, admin_headers):
    user_id = _signup(client).json()["userId"]

    pending = client.get("/api/v1/users", params={"pending": "true"}, headers=admin_headers).json()["users"]
    assert [u["id"] for u in pending] == [user_id]

    r = client.post(
        f"/api/v1/users/{user_id}/approve",
        json={"role": "branch_staff", "branches": ["isc-dip", "isc-ajman"]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    approved = r.json()["user"]
    assert approved["status"] == "active"
    # branch staff keep a single branch
    assert approved["branches"] == ["isc-dip"]

    db.expire_all()
    assert db.query(Notification).filter_by(type="user_signup", related_user_id=user_id).count() == 0

    login = client.post("/api/v1/auth/login", json={"email": "new.hire@example.com", "password": "secret123"})
    assert login.status_code == 200
    assert login.json()["landingPage"] == "/branch"


def test_approve_requires_valid_role(client, admin_headers):
    user_id = _signup(client).json()["userId"]
    r = client.post(f"/api/v1/users/{user_id}/approve", json={}, headers=admin_headers)
    assert r.status_code == 400
    r = client.post(f"/api/v1/users/{user_id}/approve", json={"role": "chef"}, headers=admin_headers)
    assert r.status_code == 400


def test_reject_and_deactivate(client, admin_headers, make_user):
    user_id = _signup(client).json()["userId"]
    r = client.post(f"/api/v1/users/{user_id}/reject", json={"reason": "Unknown applicant"}, headers=admin_headers)
    assert r.json()["user"]["status"] == "rejected"
    assert r.json()["user"]["rejectedReason"] == "Unknown applicant"

    staff = make_user("branch_staff", branches=["isc-dip"])
    r = client.post(f"/api/v1/users/{staff.id}/deactivate", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["user"]["status"] == "inactive"

    login = client.post("/api/v1/auth/login", json={"email": staff.email, "password": "secret123"})
    assert login.status_code == 403


def test_admin_cannot_deactivate_self(client, make_user, headers_for):
    admin = make_user("admin")
    r = client.post(f"/api/v1/users/{admin.id}/deactivate", headers=headers_for(admin))
    assert r.status_code == 400

    r = client.patch(f"/api/v1/users/{admin.id}", json={"status": "inactive"}, headers=headers_for(admin))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot deactivate your own account"
    r = client.patch(f"/api/v1/users/{admin.id}", json={"status": "active"}, headers=headers_for(admin))
    assert r.status_code == 200


def test_dispatcher_cannot_edit_protected_accounts(client, db, make_user, headers_for):
    dispatcher = headers_for(make_user("dispatcher"))
    admin = make_user("admin")
    staff = make_user("branch_staff")

    r = client.patch(f"/api/v1/users/{admin.id}", json={"status": "inactive"}, headers=dispatcher)
    assert r.status_code == 403
    db.refresh(admin)
    assert admin.status == "active"

    r = client.patch(f"/api/v1/users/{staff.id}", json={"status": "inactive"}, headers=dispatcher)
    assert r.status_code == 200
    assert r.json()["user"]["status"] == "inactive"


def test_dispatcher_cannot_grant_protected_roles(client, as_role):
    headers = as_role("dispatcher")
    body = {
        "email": "lead@example.com",
        "password": "secret123",
        "firstName": "Op",
        "lastName": "Lead",
        "role": "operations_lead",
    }
    r = client.post("/api/v1/users", json=body, headers=headers)
    assert r.status_code == 403

    body.update(email="kitchen@example.com", role="central_kitchen")
    r = client.post("/api/v1/users", json=body, headers=headers)
    assert r.status_code == 201
    assert r.json()["user"]["status"] == "active"

    # approval stays admin only
    assert client.post("/api/v1/users/1/approve", json={"role": "branch_staff"}, headers=headers).status_code == 403


def test_change_password_and_onboarding(client, make_user, headers_for):
    user = make_user("branch_manager", branches=["isc-dip", "isc-rak"])
    headers = headers_for(user)

    r = client.post(
        "/api/v1/users/me/change-password",
        json={"currentPassword": "wrong-one", "newPassword": "another1"},
        headers=headers,
    )
    assert r.status_code == 400

    r = client.post(
        "/api/v1/users/me/change-password",
        json={"currentPassword": "secret123", "newPassword": "another1"},
        headers=headers,
    )
    assert r.status_code == 200
    assert client.post("/api/v1/auth/login", json={"email": user.email, "password": "another1"}).status_code == 200

    r = client.patch("/api/v1/users/me/onboarding", json={"toursCompleted": ["dispatch"]}, headers=headers)
    assert r.json()["toursCompleted"] == ["dispatch"]
    r = client.patch("/api/v1/users/me/onboarding", json={}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/v1/users/me/onboarding/reset", headers=headers)
    assert r.json() == {
        "onboardingCompleted": False,
        "toursCompleted": [],
        "onboardingSkipped": False,
        "onboardingStartedAt": None,
    }
