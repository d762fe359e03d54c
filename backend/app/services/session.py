"""Session lifecycle: credential checks, OAuth sign-in, and per-request session materialization.

A session is a signed claims blob. On every request the claims go through an
explicit pipeline of steps (``SESSION_PIPELINE``) that re-reads the user row and
keeps the Zoho access token fresh. Handlers receive the resulting
``SessionContext`` instead of reading global session state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AccountBlockedError,
    AuthenticationException,
    InvalidCredentialsError,
    NotAuthenticatedError,
)
from app.core.security import create_session_token, verify_password
from app.integrations.zoho.client import ZohoOAuthClient, ZohoTokenGrant
from app.models.account import LinkedAccount
from app.models.enums import AuthEvent, AuthProvider, LoginFailureReason, UserRole
from app.models.user import User
from app.services.audit import record_auth_event
from app.services.token_refresh import REFRESH_SOURCE_SESSION, needs_refresh, refresh_zoho_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None

    def audit_fields(self) -> dict[str, str | None]:
        return {"ip_address": self.ip_address, "user_agent": self.user_agent}


@dataclass
class SessionClaims:
    """Payload of the session JWT. The Zoho refresh token never leaves the linked account row."""

    sub: str
    email: str
    name: str | None = None
    picture: str | None = None
    role: str | None = None
    active: bool = True
    provider: str | None = None
    access_token: str | None = None
    expires_at: int | None = None
    api_domain: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionClaims":
        sub = str(payload.get("sub") or "").strip()
        email = str(payload.get("email") or "").strip().lower()
        if not sub or not email:
            raise ValueError("invalid_token")
        expires_at = payload.get("expires_at")
        return cls(
            sub=sub,
            email=email,
            name=payload.get("name"),
            picture=payload.get("picture"),
            role=payload.get("role"),
            active=bool(payload.get("active", True)),
            provider=payload.get("provider"),
            access_token=payload.get("access_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
            api_domain=payload.get("api_domain"),
        )

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def uses_zoho(self) -> bool:
        return self.provider == AuthProvider.zoho.value


@dataclass
class SessionContext:
    """Identity of the caller for one request, always hydrated from the database."""

    user: User
    claims: SessionClaims
    client: ClientInfo = field(default_factory=ClientInfo)
    token_updated: bool = False

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> UserRole:
        return self.user.role

    @property
    def is_admin(self) -> bool:
        return self.user.role == UserRole.admin


@dataclass
class SessionState:
    claims: SessionClaims
    client: ClientInfo
    now: int
    oauth_client: ZohoOAuthClient | None = None
    user: User | None = None
    token_updated: bool = False


SessionStep = Callable[[Session, SessionState], SessionState]


def _epoch_now() -> int:
    return int(time.time())


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email.strip().lower())).scalars().first()


def build_session_claims(
    user: User,
    *,
    provider: AuthProvider,
    grant: ZohoTokenGrant | None = None,
    expires_at: int | None = None,
) -> SessionClaims:
    claims = SessionClaims(
        sub=str(user.id),
        email=user.email,
        name=user.name,
        picture=user.image,
        role=user.role.value,
        active=user.is_active,
        provider=provider.value,
    )
    if grant is not None:
        claims.access_token = grant.access_token
        claims.expires_at = expires_at if expires_at is not None else grant.expires_at()
        claims.api_domain = grant.api_domain or settings.ZOHO_DEFAULT_API_DOMAIN
    return claims


def issue_session_token(claims: SessionClaims) -> str:
    return create_session_token(claims.to_payload())


# ---- sign-in steps ---------------------------------------------------------


def _reject_blocked(db: Session, user: User, *, provider: AuthProvider, client: ClientInfo, stage: str) -> None:
    logger.warning("Blocked account denied (%s): %s", stage, user.email)
    record_auth_event(
        db,
        AuthEvent.login_blocked,
        user_id=user.id,
        email=user.email,
        provider=provider,
        metadata={"reason": LoginFailureReason.account_blocked.value, "stage": stage},
        **client.audit_fields(),
    )


def _record_login_failed(
    db: Session,
    *,
    email: str,
    reason: LoginFailureReason,
    provider: AuthProvider,
    client: ClientInfo,
    user_id: UUID | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    record_auth_event(
        db,
        AuthEvent.login_failed,
        user_id=user_id,
        email=email,
        provider=provider,
        metadata={"reason": reason.value, **(extra or {})},
        **client.audit_fields(),
    )


def _record_login_success(db: Session, user: User, *, provider: AuthProvider, client: ClientInfo) -> None:
    logger.info("Login success (%s): %s", provider.value, user.email)
    record_auth_event(
        db,
        AuthEvent.login_success,
        user_id=user.id,
        email=user.email,
        provider=provider,
        metadata={"role": user.role.value},
        **client.audit_fields(),
    )


def credential_check(db: Session, email: str, password: str, *, client: ClientInfo | None = None) -> User:
    """Validate an email/password login. Every outcome writes one audit row."""
    client = client or ClientInfo()
    normalized = email.strip().lower()
    provider = AuthProvider.credentials

    user = find_user_by_email(db, normalized)
    if not user:
        logger.warning("Login failed: user not found (%s)", normalized)
        _record_login_failed(db, email=normalized, reason=LoginFailureReason.user_not_found, provider=provider, client=client)
        raise InvalidCredentialsError()

    if not user.password_hash or not verify_password(password, user.password_hash):
        logger.warning("Login failed: invalid password (%s)", normalized)
        _record_login_failed(
            db,
            email=normalized,
            reason=LoginFailureReason.invalid_password,
            provider=provider,
            client=client,
            user_id=user.id,
        )
        raise InvalidCredentialsError()

    if not user.is_active:
        _reject_blocked(db, user, provider=provider, client=client, stage="credentials")
        raise AccountBlockedError()

    _record_login_success(db, user, provider=provider, client=client)
    return user


def _upsert_zoho_account(
    db: Session,
    user: User,
    *,
    provider_account_id: str,
    grant: ZohoTokenGrant,
    expires_at: int,
    client: ClientInfo,
) -> None:
    account = db.execute(
        select(LinkedAccount).where(
            LinkedAccount.provider == AuthProvider.zoho.value,
            LinkedAccount.provider_account_id == provider_account_id,
        )
    ).scalars().first()
    if account is None:
        account = LinkedAccount(
            user_id=user.id,
            provider=AuthProvider.zoho.value,
            provider_account_id=provider_account_id,
        )
    elif account.user_id != user.id:
        logger.warning("Zoho login failed: account %s linked to another user (%s)", provider_account_id, user.email)
        _record_login_failed(
            db,
            email=user.email,
            reason=LoginFailureReason.oauth_exchange_failed,
            provider=AuthProvider.zoho,
            client=client,
            user_id=user.id,
            extra={"detail": "account_conflict"},
        )
        raise AuthenticationException("zoho_account_conflict", error_code="ZOHO_ACCOUNT_CONFLICT", status_code=409)

    account.access_token = grant.access_token
    # Zoho only returns a refresh token on consent; keep the stored one otherwise.
    if grant.refresh_token:
        account.refresh_token = grant.refresh_token
    account.expires_at = expires_at
    account.token_type = grant.token_type
    account.scope = grant.scope
    account.id_token = grant.id_token
    account.api_domain = grant.api_domain or account.api_domain
    account.token_expires_in = grant.expires_in
    db.add(account)


def complete_zoho_sign_in(
    db: Session,
    *,
    profile: dict[str, Any],
    grant: ZohoTokenGrant,
    client: ClientInfo | None = None,
    now: int | None = None,
) -> tuple[User, SessionClaims]:
    """Post-authentication hook for Zoho logins.

    Users are provisioned by administrators, so an unknown email is a failed
    login. On success the linked account row is upserted with the fresh grant.
    """
    client = client or ClientInfo()
    provider = AuthProvider.zoho
    provider_account_id = str(profile.get("sub") or "").strip()
    email = str(profile.get("email") or "").strip().lower()
    if not provider_account_id or not email:
        _record_login_failed(
            db,
            email=email,
            reason=LoginFailureReason.oauth_exchange_failed,
            provider=provider,
            client=client,
            extra={"detail": "profile_incomplete"},
        )
        raise AuthenticationException("zoho_profile_incomplete", error_code="ZOHO_PROFILE_INCOMPLETE", status_code=401)

    user = find_user_by_email(db, email)
    if not user:
        logger.warning("Zoho login failed: user not provisioned (%s)", email)
        _record_login_failed(db, email=email, reason=LoginFailureReason.user_not_found, provider=provider, client=client)
        raise InvalidCredentialsError()

    if not user.is_active:
        _reject_blocked(db, user, provider=provider, client=client, stage="oauth")
        raise AccountBlockedError()

    issued_at = _epoch_now() if now is None else now
    expires_at = grant.expires_at(issued_at)
    _upsert_zoho_account(
        db, user, provider_account_id=provider_account_id, grant=grant, expires_at=expires_at, client=client
    )

    name = str(profile.get("name") or "").strip()
    picture = str(profile.get("picture") or "").strip()
    if name and not user.name:
        user.name = name[:255]
    if picture and not user.image:
        user.image = picture[:1024]
    db.add(user)
    db.commit()
    db.refresh(user)

    _record_login_success(db, user, provider=provider, client=client)
    return user, build_session_claims(user, provider=provider, grant=grant, expires_at=expires_at)


def record_logout(db: Session, claims: SessionClaims, *, client: ClientInfo | None = None) -> None:
    client = client or ClientInfo()
    record_auth_event(
        db,
        AuthEvent.logout,
        user_id=claims.sub,
        email=claims.email,
        provider=claims.provider,
        **client.audit_fields(),
    )


# ---- per-request pipeline --------------------------------------------------


def hydrate_session(db: Session, state: SessionState) -> SessionState:
    """Fail closed unless the user exists and is active; copy identity fields from the row."""
    user = find_user_by_email(db, state.claims.email)
    if not user:
        raise NotAuthenticatedError()
    if not user.is_active:
        _reject_blocked(
            db,
            user,
            provider=AuthProvider(state.claims.provider or AuthProvider.credentials.value),
            client=state.client,
            stage="session",
        )
        raise AccountBlockedError(status_code=401)

    claims = state.claims
    claims.sub = str(user.id)
    claims.role = user.role.value
    claims.active = user.is_active
    claims.name = user.name
    claims.picture = user.image
    state.user = user
    return state


def refresh_provider_tokens(db: Session, state: SessionState) -> SessionState:
    """Refresh the Zoho access token when it expires within the interactive threshold.

    Failures are audited and otherwise ignored: the session keeps its last known
    token and the next request (or the scheduled batch) tries again.
    """
    claims = state.claims
    if not claims.uses_zoho or state.user is None:
        return state
    if not needs_refresh(claims.expires_at, now=state.now, threshold_seconds=settings.TOKEN_REFRESH_THRESHOLD_SECONDS):
        return state

    refresh_token = db.execute(
        select(LinkedAccount.refresh_token).where(
            LinkedAccount.user_id == state.user.id,
            LinkedAccount.provider == AuthProvider.zoho.value,
        )
    ).scalars().first()

    outcome = refresh_zoho_tokens(
        db,
        user_id=state.user.id,
        email=claims.email,
        refresh_token=refresh_token,
        source=REFRESH_SOURCE_SESSION,
        oauth_client=state.oauth_client,
        now=state.now,
    )
    if outcome.success:
        claims.access_token = outcome.access_token
        claims.expires_at = outcome.expires_at
        if outcome.api_domain:
            claims.api_domain = outcome.api_domain
        state.token_updated = True
    return state


SESSION_PIPELINE: tuple[SessionStep, ...] = (hydrate_session, refresh_provider_tokens)


def materialize_session(
    db: Session,
    claims: SessionClaims,
    *,
    client: ClientInfo | None = None,
    oauth_client: ZohoOAuthClient | None = None,
    steps: Sequence[SessionStep] = SESSION_PIPELINE,
    now: int | None = None,
) -> SessionContext:
    state = SessionState(
        claims=claims,
        client=client or ClientInfo(),
        now=_epoch_now() if now is None else now,
        oauth_client=oauth_client,
    )
    for step in steps:
        state = step(db, state)
    if state.user is None:
        raise NotAuthenticatedError()
    return SessionContext(user=state.user, claims=state.claims, client=state.client, token_updated=state.token_updated)
