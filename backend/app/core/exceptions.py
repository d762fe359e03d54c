"""Error types rendered by the API as ``{error, message, error_code, details}``."""

from __future__ import annotations

from typing import Any


class CombiSalesException(Exception):
    """Root of every error the API reports through the JSON error envelope.

    Subclasses set ``default_message``, ``default_code`` and ``default_status``;
    each can still be overridden per raise.
    """

    default_message = "request_failed"
    default_code: str | None = None
    default_status = 400

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_code
        self.details = dict(details or {})
        self.status_code = status_code or self.default_status
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class NotFoundError(CombiSalesException):
    default_message = "not_found"
    default_code = "NOT_FOUND"
    default_status = 404


class ConflictError(CombiSalesException):
    default_message = "conflict"
    default_code = "CONFLICT"
    default_status = 409


class BadRequestError(CombiSalesException):
    default_message = "bad_request"
    default_code = "BAD_REQUEST"


class RateLimitExceeded(CombiSalesException):
    """Too many requests from one client inside the limiter window."""

    default_message = "rate_limit_exceeded"
    default_code = "RATE_LIMIT"
    default_status = 429

    def __init__(self, *, retry_after: int, limit: int, window_seconds: int):
        super().__init__(
            details={"retry_after": retry_after, "limit": limit, "window_seconds": window_seconds},
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Window": str(window_seconds),
            },
        )


class InvalidConfigurationError(CombiSalesException):
    """Startup refused because a setting is unsafe or missing."""

    default_code = "INVALID_CONFIG"
    default_status = 500

    def __init__(self, message: str, setting: str | None = None):
        super().__init__(message, details={"setting": setting} if setting else None)


# ---- Zoho accounts server ----


class ZohoException(CombiSalesException):
    default_code = "ZOHO_ERROR"
    default_status = 502


class ZohoConnectionError(ZohoException):
    """Zoho could not be reached, timed out, or answered 5xx."""

    default_message = "Failed to connect to Zoho"
    default_code = "ZOHO_CONNECTION_ERROR"


class ZohoAuthenticationError(ZohoException):
    """Zoho rejected a grant, or no usable Zoho credentials exist."""

    default_message = "Zoho authentication failed"
    default_code = "ZOHO_AUTH_ERROR"


# ---- sessions and authorization ----


class AuthenticationException(CombiSalesException):
    default_message = "authentication_failed"
    default_code = "AUTHENTICATION_FAILED"
    default_status = 401


class ExpiredTokenError(AuthenticationException):
    default_message = "Token has expired"
    default_code = "EXPIRED_TOKEN"


class AccountBlockedError(AuthenticationException):
    """Deactivated account: 403 at login, 401 on an existing session."""

    default_message = "account_blocked_contact_administrator"
    default_code = "ACCOUNT_BLOCKED"
    default_status = 403


class InsufficientPermissionsError(AuthenticationException):
    default_message = "Insufficient permissions"
    default_code = "INSUFFICIENT_PERMISSIONS"
    default_status = 403


class NotAuthenticatedError(AuthenticationException):
    default_message = "not_authenticated"
    default_code = "NOT_AUTHENTICATED"


class InvalidCredentialsError(AuthenticationException):
    """Shared by every failed sign-in so unknown users and bad passwords look alike."""

    default_message = "invalid_credentials"
    default_code = "INVALID_CREDENTIALS"


class CronUnauthorizedError(AuthenticationException):
    default_message = "Unauthorized"
    default_code = "CRON_UNAUTHORIZED"
