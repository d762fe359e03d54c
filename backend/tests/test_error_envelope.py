from __future__ import annotations

from app.core.exceptions import (
    AccountBlockedError,
    AuthenticationException,
    CronUnauthorizedError,
    NotFoundError,
    RateLimitExceeded,
    ZohoConnectionError,
)


def test_subclass_defaults_fill_the_envelope() -> None:
    exc = CronUnauthorizedError()

    assert exc.status_code == 401
    assert str(exc) == "Unauthorized"
    assert exc.headers is None
    assert exc.to_dict() == {
        "error": "CronUnauthorizedError",
        "message": "Unauthorized",
        "error_code": "CRON_UNAUTHORIZED",
        "details": {},
    }


def test_raise_site_overrides_take_precedence() -> None:
    blocked = AccountBlockedError(status_code=401)
    conflict = AuthenticationException("zoho_account_conflict", error_code="ZOHO_ACCOUNT_CONFLICT", status_code=409)
    missing = NotFoundError("user_not_found", details={"user_id": "42"})

    assert (blocked.status_code, blocked.error_code) == (401, "ACCOUNT_BLOCKED")
    assert (conflict.status_code, conflict.error_code) == (409, "ZOHO_ACCOUNT_CONFLICT")
    assert missing.to_dict()["details"] == {"user_id": "42"}
    assert ZohoConnectionError().message == "Failed to connect to Zoho"
    assert ZohoConnectionError().status_code == 502


def test_rate_limit_error_carries_retry_headers() -> None:
    exc = RateLimitExceeded(retry_after=12, limit=5, window_seconds=60)

    assert exc.status_code == 429
    assert exc.headers == {"Retry-After": "12", "X-RateLimit-Limit": "5", "X-RateLimit-Window": "60"}
    assert exc.details == {"retry_after": 12, "limit": 5, "window_seconds": 60}


def test_handler_renders_envelope_for_api_errors(client) -> None:
    response = client.get("/api/auth/session")

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "NotAuthenticatedError"
    assert body["error_code"] == "NOT_AUTHENTICATED"
    assert body["message"] == "not_authenticated"
