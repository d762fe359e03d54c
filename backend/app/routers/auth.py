"""Authentication endpoints (credentials login, Zoho OAuth, logout, session, profile)."""

from __future__ import annotations

import logging
import secrets
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import (
    clear_session_cookie,
    client_info,
    get_session,
    read_session_claims,
    set_session_cookie,
)
from app.core.exceptions import AccountBlockedError, AuthenticationException, ZohoException
from app.core.rate_limit import rate_limit
from app.core.security import generate_pkce_pair
from app.db.session import get_db
from app.integrations.zoho.client import ZohoOAuthClient
from app.models.enums import AuthEvent, AuthProvider, LoginFailureReason
from app.schemas.auth import LoginRequest, MessageResponse, SessionOut, SessionUserOut
from app.schemas.user import CurrentUserUpdate, UserOut
from app.services.audit import record_auth_event
from app.services.session import (
    SessionContext,
    build_session_claims,
    complete_zoho_sign_in,
    credential_check,
    issue_session_token,
    record_logout,
)
from app.services.users import update_current_user

router = APIRouter(dependencies=[Depends(rate_limit("auth"))])
logger = logging.getLogger(__name__)

ZOHO_STATE_COOKIE = "cs_oauth_state"
ZOHO_VERIFIER_COOKIE = "cs_oauth_verifier"
ZOHO_COOKIE_PATH = "/api/auth/zoho"


def _session_out(session: SessionContext) -> SessionOut:
    user = session.user
    return SessionOut(
        user=SessionUserOut(
            id=user.id,
            email=user.email,
            name=user.name,
            image=user.image,
            role=user.role,
            is_active=user.is_active,
        ),
        provider=session.claims.provider,
        api_domain=session.claims.api_domain,
        provider_token_expires_at=session.claims.expires_at,
    )


def _oauth_error_redirect(error_code: str) -> RedirectResponse:
    query = urlencode({"oauth_error": error_code})
    response = RedirectResponse(url=f"{settings.FRONTEND_BASE_URL}/login?{query}", status_code=302)
    _clear_oauth_cookies(response)
    return response


def _clear_oauth_cookies(response: Response) -> None:
    response.delete_cookie(ZOHO_STATE_COOKIE, path=ZOHO_COOKIE_PATH)
    response.delete_cookie(ZOHO_VERIFIER_COOKIE, path=ZOHO_COOKIE_PATH)


@router.post("/login", response_model=SessionOut)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)) -> SessionOut:
    client = client_info(request)
    user = credential_check(db, payload.email, payload.password, client=client)
    claims = build_session_claims(user, provider=AuthProvider.credentials)
    set_session_cookie(response, issue_session_token(claims))
    return _session_out(SessionContext(user=user, claims=claims, client=client))


@router.get("/zoho/start")
def zoho_oauth_start() -> RedirectResponse:
    if not settings.zoho_oauth_ready:
        return _oauth_error_redirect("zoho_oauth_not_configured")

    state = secrets.token_urlsafe(32)
    verifier, challenge = generate_pkce_pair()
    params = {
        "client_id": settings.ZOHO_CLIENT_ID,
        "redirect_uri": settings.ZOHO_REDIRECT_URI,
        "response_type": "code",
        "scope": settings.ZOHO_SCOPES,
        "state": state,
        "access_type": "offline",
        "prompt": "consent",
        "code_challenge": challenge,
        "code_challenge_method": "S256",
    }
    redirect = RedirectResponse(url=f"{settings.zoho_auth_url}?{urlencode(params)}", status_code=302)
    for name, value in ((ZOHO_STATE_COOKIE, state), (ZOHO_VERIFIER_COOKIE, verifier)):
        redirect.set_cookie(
            name,
            value,
            httponly=True,
            samesite="lax",
            secure=settings.ENV != "development",
            path=ZOHO_COOKIE_PATH,
            max_age=600,
        )
    return redirect


@router.get("/zoho/callback")
def zoho_oauth_callback(
    request: Request,
    db: Session = Depends(get_db),
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    if error:
        return _oauth_error_redirect("zoho_authorization_denied")
    if not settings.zoho_oauth_ready:
        return _oauth_error_redirect("zoho_oauth_not_configured")

    stored_state = request.cookies.get(ZOHO_STATE_COOKIE)
    verifier = request.cookies.get(ZOHO_VERIFIER_COOKIE)
    if not code or not state or not stored_state or not verifier or not secrets.compare_digest(state, stored_state):
        return _oauth_error_redirect("zoho_invalid_state")

    client = client_info(request)
    zoho = ZohoOAuthClient()
    try:
        grant = zoho.exchange_code(code, redirect_uri=settings.ZOHO_REDIRECT_URI, code_verifier=verifier)
        profile = zoho.get_userinfo(grant.access_token)
    except ZohoException as exc:
        logger.warning("Zoho OAuth exchange failed: %s", exc.message)
        record_auth_event(
            db,
            AuthEvent.login_failed,
            provider=AuthProvider.zoho,
            metadata={"reason": LoginFailureReason.oauth_exchange_failed.value, "error": exc.message},
            **client.audit_fields(),
        )
        return _oauth_error_redirect("zoho_exchange_failed")

    try:
        _, claims = complete_zoho_sign_in(db, profile=profile, grant=grant, client=client)
    except AccountBlockedError:
        return _oauth_error_redirect("account_blocked")
    except AuthenticationException as exc:
        return _oauth_error_redirect(str(exc.error_code or "zoho_oauth_failed").lower())

    response = RedirectResponse(url=f"{settings.FRONTEND_BASE_URL}/dashboard", status_code=302)
    set_session_cookie(response, issue_session_token(claims))
    _clear_oauth_cookies(response)
    return response


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)) -> MessageResponse:
    claims = read_session_claims(request)
    if claims is not None:
        record_logout(db, claims, client=client_info(request))
    clear_session_cookie(response)
    return MessageResponse(message="logged_out")


@router.get("/session", response_model=SessionOut)
def current_session(session: SessionContext = Depends(get_session)) -> SessionOut:
    return _session_out(session)


@router.patch("/update", response_model=UserOut)
def update_profile(
    payload: CurrentUserUpdate,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
) -> UserOut:
    user = update_current_user(db, session.user, payload)
    return UserOut.model_validate(user)
