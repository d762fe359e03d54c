from __future__ import annotations

import pytest

from app.core.exceptions import AccountBlockedError, AuthenticationException, ZohoConnectionError
from app.core.security import decode_session_token
from app.integrations.zoho.client import ZohoTokenGrant
from app.models.account import LinkedAccount
from app.models.enums import AuthProvider, UserRole
from app.services.session import (
    ClientInfo,
    SessionClaims,
    build_session_claims,
    complete_zoho_sign_in,
    credential_check,
    hydrate_session,
    issue_session_token,
    materialize_session,
)

NOW = 1_772_000_000
GRANT = ZohoTokenGrant(access_token="access-new", expires_in=3600, refresh_token=None)
CLIENT = ClientInfo(ip_address="203.0.113.7", user_agent="pytest")


def _zoho_claims(user, *, expires_at: int, role: str | None = None) -> SessionClaims:
    return SessionClaims(
        sub=str(user.id),
        email=user.email,
        role=role or user.role.value,
        provider=AuthProvider.zoho.value,
        access_token="access-old",
        expires_at=expires_at,
        api_domain="https://www.zohoapis.eu",
    )


def test_session_role_and_identity_come_from_database(db, make_user, fake_zoho) -> None:
    user = make_user("seller@x.com", role=UserRole.seller, name="Current Name")
    claims = build_session_claims(user, provider=AuthProvider.credentials)
    claims.role = "admin"
    claims.name = "Stale Name"

    context = materialize_session(db, claims, client=CLIENT, oauth_client=fake_zoho(GRANT), now=NOW)

    assert context.user.id == user.id
    assert context.claims.role == "seller"
    assert context.claims.name == "Current Name"
    assert context.is_admin is False
    assert context.token_updated is False


def test_inactive_user_session_fails_closed_and_is_audited(db, make_user, audit_rows) -> None:
    user = make_user("blocked@x.com", is_active=False)
    claims = build_session_claims(user, provider=AuthProvider.credentials)
    claims.active = True

    with pytest.raises(AccountBlockedError) as excinfo:
        materialize_session(db, claims, client=CLIENT, now=NOW)

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "account_blocked_contact_administrator"
    rows = audit_rows()
    assert [row.event for row in rows] == ["LOGIN_BLOCKED"]
    assert rows[0].meta == {"reason": "ACCOUNT_BLOCKED", "stage": "session"}
    assert rows[0].ip_address == "203.0.113.7"


def test_deleted_user_session_is_rejected(db) -> None:
    claims = SessionClaims(sub="00000000-0000-0000-0000-000000000000", email="ghost@x.com")

    with pytest.raises(AuthenticationException) as excinfo:
        materialize_session(db, claims, now=NOW)

    assert excinfo.value.status_code == 401


def test_session_refreshes_zoho_token_near_expiry(db, make_user, link_zoho, fake_zoho, audit_rows) -> None:
    user = make_user("zoho@x.com")
    link_zoho(user, expires_at=NOW + 120)
    client = fake_zoho(GRANT)

    context = materialize_session(db, _zoho_claims(user, expires_at=NOW + 120), oauth_client=client, now=NOW)

    assert context.token_updated is True
    assert context.claims.access_token == "access-new"
    assert "refresh_token" not in context.claims.to_payload()
    assert context.claims.expires_at == NOW + 3600
    assert client.calls == ["refresh-1"]
    assert [row.event for row in audit_rows()] == ["TOKEN_REFRESH_SUCCESS"]


def test_session_survives_failed_refresh_with_stale_claims(db, make_user, link_zoho, fake_zoho, audit_rows) -> None:
    user = make_user("zoho@x.com")
    link_zoho(user, expires_at=NOW + 120)
    client = fake_zoho(ZohoConnectionError("Zoho request timed out"))

    context = materialize_session(db, _zoho_claims(user, expires_at=NOW + 120), oauth_client=client, now=NOW)

    assert context.token_updated is False
    assert context.claims.access_token == "access-old"
    assert context.claims.expires_at == NOW + 120
    rows = audit_rows()
    assert [row.event for row in rows] == ["TOKEN_REFRESH_FAILED"]
    assert rows[0].meta["error"] == "Zoho request timed out"


def test_session_skips_refresh_outside_threshold(db, make_user, link_zoho, fake_zoho, audit_rows) -> None:
    user = make_user("zoho@x.com")
    link_zoho(user, expires_at=NOW + 300)
    client = fake_zoho(GRANT)

    context = materialize_session(db, _zoho_claims(user, expires_at=NOW + 300), oauth_client=client, now=NOW)

    assert context.token_updated is False
    assert client.calls == []
    assert audit_rows() == []


def test_inactive_user_never_reaches_token_refresh(db, make_user, link_zoho, fake_zoho) -> None:
    user = make_user("zoho@x.com", is_active=False)
    link_zoho(user, expires_at=NOW - 10)
    client = fake_zoho(GRANT)

    with pytest.raises(AccountBlockedError):
        materialize_session(db, _zoho_claims(user, expires_at=NOW - 10), oauth_client=client, now=NOW)
    assert client.calls == []


def test_custom_pipeline_steps_run_in_order(db, make_user) -> None:
    user = make_user("seller@x.com")
    seen: list[str] = []

    def _mark(db_, state):  # noqa: ANN001, ANN202
        seen.append(state.user.email)
        return state

    materialize_session(
        db,
        build_session_claims(user, provider=AuthProvider.credentials),
        steps=(hydrate_session, _mark),
        now=NOW,
    )

    assert seen == ["seller@x.com"]


def test_credential_check_audits_each_failure_reason(db, make_user, audit_rows) -> None:
    make_user("seller@x.com", password="correct-horse")
    make_user("blocked@x.com", password="correct-horse", is_active=False)

    with pytest.raises(AuthenticationException) as unknown:
        credential_check(db, "nobody@x.com", "whatever", client=CLIENT)
    with pytest.raises(AuthenticationException) as wrong:
        credential_check(db, "seller@x.com", "wrong-password", client=CLIENT)
    with pytest.raises(AccountBlockedError) as blocked:
        credential_check(db, "blocked@x.com", "correct-horse", client=CLIENT)

    assert unknown.value.message == wrong.value.message == "invalid_credentials"
    assert blocked.value.status_code == 403
    rows = audit_rows()
    assert [(row.event, row.meta["reason"]) for row in rows] == [
        ("LOGIN_FAILED", "USER_NOT_FOUND"),
        ("LOGIN_FAILED", "INVALID_PASSWORD"),
        ("LOGIN_BLOCKED", "ACCOUNT_BLOCKED"),
    ]


def test_credential_check_success_is_audited(db, make_user, audit_rows) -> None:
    user = make_user("seller@x.com", password="correct-horse")

    result = credential_check(db, " Seller@X.com ", "correct-horse", client=CLIENT)

    assert result.id == user.id
    rows = audit_rows()
    assert [(row.event, row.provider) for row in rows] == [("LOGIN_SUCCESS", "credentials")]


def test_zoho_sign_in_requires_provisioned_user(db, audit_rows) -> None:
    profile = {"sub": "zoho-123", "email": "stranger@x.com", "name": "Stranger"}

    with pytest.raises(AuthenticationException):
        complete_zoho_sign_in(db, profile=profile, grant=GRANT, client=CLIENT, now=NOW)

    rows = audit_rows()
    assert [(row.event, row.provider, row.meta["reason"]) for row in rows] == [
        ("LOGIN_FAILED", "zoho", "USER_NOT_FOUND"),
    ]


def test_zoho_sign_in_links_account_and_fills_profile(db, make_user, audit_rows) -> None:
    user = make_user("seller@x.com", name=None)
    grant = ZohoTokenGrant(
        access_token="access-1",
        expires_in=3600,
        refresh_token="refresh-1",
        api_domain="https://www.zohoapis.eu",
    )
    profile = {"sub": "zoho-123", "email": "Seller@x.com", "name": "Seller One", "picture": "https://img/x.png"}

    signed_in, claims = complete_zoho_sign_in(db, profile=profile, grant=grant, client=CLIENT, now=NOW)

    assert signed_in.id == user.id
    assert signed_in.name == "Seller One"
    assert claims.provider == "zoho"
    assert claims.expires_at == NOW + 3600
    assert claims.api_domain == "https://www.zohoapis.eu"

    account = db.query(LinkedAccount).filter(LinkedAccount.provider_account_id == "zoho-123").one()
    assert account.user_id == user.id
    assert account.refresh_token == "refresh-1"
    assert account.expires_at == NOW + 3600
    assert [row.event for row in audit_rows()] == ["LOGIN_SUCCESS"]

    # A later consent-less login keeps the stored refresh token.
    complete_zoho_sign_in(db, profile=profile, grant=GRANT, client=CLIENT, now=NOW + 10)
    db.expire_all()
    account = db.query(LinkedAccount).filter(LinkedAccount.provider_account_id == "zoho-123").one()
    assert account.access_token == "access-new"
    assert account.refresh_token == "refresh-1"


def test_zoho_sign_in_blocks_inactive_user(db, make_user, audit_rows) -> None:
    make_user("blocked@x.com", is_active=False)
    profile = {"sub": "zoho-9", "email": "blocked@x.com"}

    with pytest.raises(AccountBlockedError):
        complete_zoho_sign_in(db, profile=profile, grant=GRANT, client=CLIENT, now=NOW)

    assert db.query(LinkedAccount).count() == 0
    assert [(row.event, row.meta["stage"]) for row in audit_rows()] == [("LOGIN_BLOCKED", "oauth")]


def test_session_refresh_reads_refresh_token_from_linked_account(db, make_user, link_zoho, fake_zoho) -> None:
    user = make_user("zoho@x.com")
    link_zoho(user, expires_at=NOW + 60, refresh_token="refresh-stored")
    client = fake_zoho(GRANT)
    claims = _zoho_claims(user, expires_at=NOW + 60)

    materialize_session(db, claims, oauth_client=client, now=NOW)

    assert client.calls == ["refresh-stored"]


def test_zoho_session_token_carries_no_refresh_token(db, make_user) -> None:
    make_user("seller@x.com")
    grant = ZohoTokenGrant(access_token="access-1", expires_in=3600, refresh_token="refresh-secret")
    profile = {"sub": "zoho-123", "email": "seller@x.com"}

    _, claims = complete_zoho_sign_in(db, profile=profile, grant=grant, client=CLIENT, now=NOW)
    payload = decode_session_token(issue_session_token(claims))

    assert "refresh_token" not in payload
    assert "refresh-secret" not in payload.values()
    assert payload["access_token"] == "access-1"
    assert "refresh_token" not in SessionClaims.from_payload({**payload, "refresh_token": "forged"}).to_payload()


def test_zoho_sign_in_conflict_is_audited(db, make_user, link_zoho, audit_rows) -> None:
    owner = make_user("owner@x.com")
    other = make_user("other@x.com")
    link_zoho(owner, expires_at=NOW + 3600, provider_account_id="zid-1")
    profile = {"sub": "zid-1", "email": "other@x.com"}

    with pytest.raises(AuthenticationException) as excinfo:
        complete_zoho_sign_in(db, profile=profile, grant=GRANT, client=CLIENT, now=NOW)

    assert excinfo.value.status_code == 409
    assert excinfo.value.error_code == "ZOHO_ACCOUNT_CONFLICT"
    rows = audit_rows()
    assert [(row.event, row.provider, row.email) for row in rows] == [("LOGIN_FAILED", "zoho", "other@x.com")]
    assert rows[0].user_id == other.id
    assert rows[0].meta == {"reason": "OAUTH_EXCHANGE_FAILED", "detail": "account_conflict"}
    assert rows[0].ip_address == "203.0.113.7"
    db.expire_all()
    account = db.query(LinkedAccount).filter(LinkedAccount.provider_account_id == "zid-1").one()
    assert account.user_id == owner.id
    assert account.access_token == "access-old"
