"""Common FastAPI dependencies for sessions and authorization."""

from __future__ import annotations

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationException,
    CronUnauthorizedError,
    ExpiredTokenError,
    InsufficientPermissionsError,
    NotAuthenticatedError,
)
from app.core.rbac import has_permission
from app.core.security import decode_session_token, secrets_match
from app.db.session import get_db
from app.services.session import ClientInfo, SessionClaims, SessionContext, issue_session_token, materialize_session


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization", "")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    cleaned = token.strip()
    return cleaned or None


def client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("user-agent"))


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        secure=settings.ENV != "development",
        path="/",
        max_age=settings.SESSION_MAX_AGE_SECONDS,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")


def read_session_claims(request: Request) -> SessionClaims | None:
    """Decode the session token if one is present and valid; never touches the database."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME) or _extract_bearer_token(request)
    if not token:
        return None
    try:
        return SessionClaims.from_payload(decode_session_token(token))
    except ValueError:
        return None


def get_session(request: Request, response: Response, db: Session = Depends(get_db)) -> SessionContext:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME) or _extract_bearer_token(request)
    if not token:
        raise NotAuthenticatedError()

    try:
        claims = SessionClaims.from_payload(decode_session_token(token))
    except ValueError as exc:
        if str(exc) == "expired_token":
            raise ExpiredTokenError("session_expired")
        raise AuthenticationException("invalid_token", error_code="INVALID_TOKEN", status_code=401)

    context = materialize_session(db, claims, client=client_info(request))
    if context.token_updated:
        set_session_cookie(response, issue_session_token(context.claims))
    return context


def require_permission(permission: str):
    def _checker(session: SessionContext = Depends(get_session)) -> SessionContext:
        if not has_permission(session.user, permission):
            raise InsufficientPermissionsError("forbidden")
        return session

    return _checker


def require_cron_secret(request: Request) -> None:
    """Shared-secret check for scheduler endpoints; runs before any database dependency."""
    if not secrets_match(_extract_bearer_token(request), settings.CRON_SECRET.strip()):
        raise CronUnauthorizedError()
