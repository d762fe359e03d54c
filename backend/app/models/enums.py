"""Shared enum values used by the database models and schemas."""

from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    admin = "admin"
    seller = "seller"
    dealer = "dealer"
    inspector = "inspector"


class AuthProvider(str, enum.Enum):
    credentials = "credentials"
    zoho = "zoho"
    admin_action = "admin_action"


class AuthEvent(str, enum.Enum):
    login_success = "LOGIN_SUCCESS"
    login_failed = "LOGIN_FAILED"
    login_blocked = "LOGIN_BLOCKED"
    logout = "LOGOUT"
    token_refresh_success = "TOKEN_REFRESH_SUCCESS"
    token_refresh_failed = "TOKEN_REFRESH_FAILED"
    session_revoked = "SESSION_REVOKED"


class LoginFailureReason(str, enum.Enum):
    user_not_found = "USER_NOT_FOUND"
    invalid_password = "INVALID_PASSWORD"
    account_blocked = "ACCOUNT_BLOCKED"
    oauth_exchange_failed = "OAUTH_EXCHANGE_FAILED"
