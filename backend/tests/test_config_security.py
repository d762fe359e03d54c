from __future__ import annotations

import pytest

from app.core.config import Settings
from app.core.exceptions import InvalidConfigurationError
from app.core.security import (
    create_session_token,
    decode_session_token,
    generate_pkce_pair,
    secrets_match,
)


def test_runtime_security_is_relaxed_in_development() -> None:
    Settings(ENV="development", SESSION_SECRET="change-me", CRON_SECRET="").validate_runtime_security()


def test_runtime_security_rejects_default_session_secret() -> None:
    config = Settings(ENV="production", SESSION_SECRET="change-me", CRON_SECRET="cron")

    with pytest.raises(InvalidConfigurationError) as excinfo:
        config.validate_runtime_security()
    assert excinfo.value.details == {"setting": "SESSION_SECRET"}


def test_runtime_security_rejects_missing_cron_secret() -> None:
    config = Settings(ENV="staging", SESSION_SECRET="a-real-secret", CRON_SECRET="  ")

    with pytest.raises(InvalidConfigurationError) as excinfo:
        config.validate_runtime_security()
    assert excinfo.value.details == {"setting": "CRON_SECRET"}


def test_zoho_urls_follow_accounts_domain() -> None:
    config = Settings(ZOHO_ACCOUNTS_URL="https://accounts.zoho.eu/")

    assert config.zoho_token_url == "https://accounts.zoho.eu/oauth/v2/token"
    assert config.zoho_auth_url == "https://accounts.zoho.eu/oauth/v2/auth"


def test_session_token_round_trip_drops_empty_claims() -> None:
    token = create_session_token({"sub": "u-1", "email": "a@x.com", "access_token": None})

    payload = decode_session_token(token)

    assert payload["sub"] == "u-1"
    assert payload["type"] == "session"
    assert "access_token" not in payload


def test_expired_and_tampered_session_tokens_are_rejected() -> None:
    expired = create_session_token({"sub": "u-1", "email": "a@x.com"}, max_age_seconds=-10)

    with pytest.raises(ValueError, match="expired_token"):
        decode_session_token(expired)
    with pytest.raises(ValueError, match="invalid_token"):
        header, payload, _ = expired.split(".")
        decode_session_token(f"{header}.{payload}.bm90LXRoZS1zaWduYXR1cmU")


def test_secrets_match_requires_both_values() -> None:
    assert secrets_match("abc", "abc")
    assert not secrets_match("abc", "abd")
    assert not secrets_match("", "")
    assert not secrets_match(None, "abc")


def test_pkce_pair_is_url_safe() -> None:
    verifier, challenge = generate_pkce_pair()

    assert len(verifier) >= 43
    assert "=" not in challenge
    assert verifier != challenge
