from __future__ import annotations

import uuid

from app.models.enums import UserRole


def test_user_admin_requires_admin_role(client, make_user, auth_header) -> None:
    seller = make_user("seller@x.com")

    assert client.get("/api/users/", headers=auth_header(seller)).status_code == 403
    assert client.get("/api/users/").status_code == 401


def test_admin_creates_and_lists_users(client, make_user, auth_header) -> None:
    headers = auth_header(make_user("admin@x.com", role=UserRole.admin))

    created = client.post(
        "/api/users/",
        json={"email": "Dealer@X.com", "name": "Dealer One", "role": "dealer", "country": "MA"},
        headers=headers,
    )
    duplicate = client.post("/api/users/", json={"email": "dealer@x.com", "name": "Dealer Two"}, headers=headers)
    listed = client.get("/api/users/", headers=headers)

    assert created.status_code == 201
    assert created.json()["email"] == "dealer@x.com"
    assert created.json()["role"] == "dealer"
    assert duplicate.status_code == 409
    assert {user["email"] for user in listed.json()} == {"admin@x.com", "dealer@x.com"}


def test_admin_toggles_active_flag(client, make_user, auth_header) -> None:
    headers = auth_header(make_user("admin@x.com", role=UserRole.admin))
    target = make_user("seller@x.com")

    response = client.patch(f"/api/users/{target.id}/active", json={"is_active": False}, headers=headers)
    missing = client.patch(f"/api/users/{uuid.uuid4()}/active", json={"is_active": False}, headers=headers)

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert missing.status_code == 404


def test_revoke_session_records_event_and_deactivates(client, make_user, auth_header, audit_rows) -> None:
    admin = make_user("admin@x.com", role=UserRole.admin)
    target = make_user("seller@x.com")
    target_headers = auth_header(target)

    response = client.post(
        "/api/users/revoke-session",
        json={"user_id": str(target.id), "deactivate": True},
        headers=auth_header(admin),
    )

    assert response.status_code == 200
    assert response.json()["user"]["is_active"] is False
    rows = audit_rows("SESSION_REVOKED")
    assert len(rows) == 1
    assert rows[0].provider == "admin_action"
    assert rows[0].meta == {"revokedBy": str(admin.id), "revokedByEmail": "admin@x.com", "deactivated": True}

    # The revoked user's existing session stops working on the next request.
    assert client.get("/api/auth/session", headers=target_headers).status_code == 401


def test_admin_cannot_revoke_own_session(client, make_user, auth_header, audit_rows) -> None:
    admin = make_user("admin@x.com", role=UserRole.admin)

    response = client.post(
        "/api/users/revoke-session",
        json={"user_id": str(admin.id)},
        headers=auth_header(admin),
    )

    assert response.status_code == 400
    assert audit_rows("SESSION_REVOKED") == []
