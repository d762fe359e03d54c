"""Zoho OAuth token refresh: shared refresh attempt, batch job and valid-token lookup."""

from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.core.exceptions import ZohoAuthenticationError
from app.integrations.zoho.client import ZohoOAuthClient, ZohoTokenGrant
from app.models.account import LinkedAccount
from app.models.enums import AuthEvent, AuthProvider
from app.models.user import User
from app.services.audit import record_auth_event

logger = logging.getLogger(__name__)

REFRESH_SOURCE_SESSION = "session"
REFRESH_SOURCE_CRON = "cron"
REFRESH_SOURCE_LOOKUP = "lookup"


def _epoch_now() -> int:
    return int(time.time())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def needs_refresh(expires_at: int | None, *, now: int, threshold_seconds: int) -> bool:
    """True when the token expires within the threshold (unknown expiry counts as expired)."""
    return (expires_at or 0) - now < threshold_seconds


@dataclass(frozen=True)
class ZohoTokens:
    access_token: str
    refresh_token: str | None
    expires_at: int
    api_domain: str


@dataclass
class RefreshOutcome:
    success: bool
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None
    expires_in: int | None = None
    api_domain: str | None = None
    error: str | None = None


def _persist_grant(
    db: Session,
    *,
    grant: ZohoTokenGrant,
    expires_at: int,
    user_id: UUID,
    provider_account_id: str | None,
) -> None:
    values: dict[str, Any] = {
        "access_token": grant.access_token,
        "expires_at": expires_at,
        "token_refreshed_at": _utcnow(),
        "token_expires_in": grant.expires_in,
    }
    if grant.refresh_token:
        values["refresh_token"] = grant.refresh_token
    if grant.api_domain:
        values["api_domain"] = grant.api_domain

    # Keyed update without a version check: concurrent refreshes are last-writer-wins.
    stmt = update(LinkedAccount).where(LinkedAccount.provider == AuthProvider.zoho.value)
    if provider_account_id:
        stmt = stmt.where(LinkedAccount.provider_account_id == provider_account_id)
    else:
        stmt = stmt.where(LinkedAccount.user_id == user_id)
    db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    db.commit()


def refresh_zoho_tokens(
    db: Session,
    *,
    user_id: UUID,
    email: str | None,
    refresh_token: str | None,
    source: str,
    provider_account_id: str | None = None,
    oauth_client: ZohoOAuthClient | None = None,
    now: int | None = None,
) -> RefreshOutcome:
    """One refresh attempt against Zoho. Always writes exactly one audit row; never raises."""
    client = oauth_client or ZohoOAuthClient()
    issued_at = _epoch_now() if now is None else now
    cron_job = source == REFRESH_SOURCE_CRON
    try:
        grant = client.refresh_access_token(refresh_token or "")
        expires_at = grant.expires_at(issued_at)
        _persist_grant(
            db,
            grant=grant,
            expires_at=expires_at,
            user_id=user_id,
            provider_account_id=provider_account_id,
        )
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        error = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        logger.warning("Zoho token refresh failed (source=%s user=%s): %s", source, user_id, error)
        record_auth_event(
            db,
            AuthEvent.token_refresh_failed,
            user_id=user_id,
            email=email,
            provider=AuthProvider.zoho,
            metadata={"source": source, "cronJob": cron_job, "error": error},
        )
        return RefreshOutcome(success=False, error=error)

    logger.info("Zoho token refreshed (source=%s user=%s expires_in=%s)", source, user_id, grant.expires_in)
    record_auth_event(
        db,
        AuthEvent.token_refresh_success,
        user_id=user_id,
        email=email,
        provider=AuthProvider.zoho,
        metadata={"source": source, "cronJob": cron_job, "expiresIn": grant.expires_in},
    )
    return RefreshOutcome(
        success=True,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token or refresh_token,
        expires_at=expires_at,
        expires_in=grant.expires_in,
        api_domain=grant.api_domain,
    )


@dataclass
class RefreshError:
    user_id: str
    error: str


@dataclass
class BatchRefreshResult:
    total_processed: int = 0
    refreshed: int = 0
    failed: int = 0
    skipped_inactive: int = 0
    errors: list[RefreshError] = field(default_factory=list)


def find_expiring_accounts(db: Session, *, now: int, threshold_seconds: int) -> list[LinkedAccount]:
    stmt = (
        select(LinkedAccount)
        .options(joinedload(LinkedAccount.user))
        .where(
            LinkedAccount.provider == AuthProvider.zoho.value,
            LinkedAccount.refresh_token.is_not(None),
            LinkedAccount.expires_at <= now + threshold_seconds,
        )
        .order_by(LinkedAccount.expires_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def run_batch_refresh(
    db: Session,
    *,
    results: BatchRefreshResult | None = None,
    oauth_client: ZohoOAuthClient | None = None,
    now: int | None = None,
) -> BatchRefreshResult:
    """Refresh every Zoho token expiring soon, one account at a time.

    Inactive owners are skipped without a provider call or audit row. A failing
    account is recorded and the loop moves on; an exception outside the loop
    (for example the initial query) propagates with ``results`` partially filled.
    """
    results = results if results is not None else BatchRefreshResult()
    current = _epoch_now() if now is None else now
    client = oauth_client or ZohoOAuthClient()

    accounts = find_expiring_accounts(db, now=current, threshold_seconds=settings.BATCH_REFRESH_THRESHOLD_SECONDS)
    # Snapshot the fields we need: each refresh commits and expires loaded rows.
    pending = [
        (account.user_id, account.user.email, account.user.is_active, account.refresh_token, account.provider_account_id)
        for account in accounts
    ]

    for user_id, email, is_active, refresh_token, provider_account_id in pending:
        if not is_active:
            results.skipped_inactive += 1
            continue

        results.total_processed += 1
        outcome = refresh_zoho_tokens(
            db,
            user_id=user_id,
            email=email,
            refresh_token=refresh_token,
            source=REFRESH_SOURCE_CRON,
            provider_account_id=provider_account_id,
            oauth_client=client,
            now=current,
        )
        if outcome.success:
            results.refreshed += 1
        else:
            results.failed += 1
            results.errors.append(RefreshError(user_id=str(user_id), error=outcome.error or "unknown_error"))

    logger.info(
        "Zoho batch refresh completed: processed=%s refreshed=%s failed=%s skipped_inactive=%s",
        results.total_processed,
        results.refreshed,
        results.failed,
        results.skipped_inactive,
    )
    return results


def _to_tokens(account: LinkedAccount) -> ZohoTokens:
    return ZohoTokens(
        access_token=account.access_token or "",
        refresh_token=account.refresh_token,
        expires_at=account.expires_at or 0,
        api_domain=account.api_domain or settings.ZOHO_DEFAULT_API_DOMAIN,
    )


def get_valid_zoho_tokens(
    db: Session,
    user_id: UUID,
    *,
    oauth_client: ZohoOAuthClient | None = None,
    now: int | None = None,
) -> ZohoTokens | None:
    """Stored Zoho tokens for a user, refreshed first when they are close to expiry."""
    account = db.execute(
        select(LinkedAccount)
        .options(joinedload(LinkedAccount.user))
        .where(LinkedAccount.user_id == user_id, LinkedAccount.provider == AuthProvider.zoho.value)
    ).scalars().first()
    if not account or not account.access_token:
        logger.warning("No Zoho account found for user %s", user_id)
        return None

    current = _epoch_now() if now is None else now
    if not needs_refresh(account.expires_at, now=current, threshold_seconds=settings.TOKEN_REFRESH_THRESHOLD_SECONDS):
        return _to_tokens(account)

    if not account.refresh_token:
        logger.warning("No refresh token available for user %s", user_id)
        return None

    stored_domain = account.api_domain
    outcome = refresh_zoho_tokens(
        db,
        user_id=account.user_id,
        email=account.user.email,
        refresh_token=account.refresh_token,
        source=REFRESH_SOURCE_LOOKUP,
        provider_account_id=account.provider_account_id,
        oauth_client=oauth_client,
        now=current,
    )
    if not outcome.success:
        return None
    return ZohoTokens(
        access_token=outcome.access_token or "",
        refresh_token=outcome.refresh_token,
        expires_at=outcome.expires_at or 0,
        api_domain=outcome.api_domain or stored_domain or settings.ZOHO_DEFAULT_API_DOMAIN,
    )


def get_any_valid_zoho_tokens(
    db: Session,
    *,
    oauth_client: ZohoOAuthClient | None = None,
) -> tuple[ZohoTokens, UUID] | None:
    """Valid tokens from any active user with a linked Zoho account (admin tasks, jobs)."""
    user_id = db.execute(
        select(LinkedAccount.user_id)
        .join(User, LinkedAccount.user_id == User.id)
        .where(
            LinkedAccount.provider == AuthProvider.zoho.value,
            LinkedAccount.access_token.is_not(None),
            User.is_active.is_(True),
        )
        .limit(1)
    ).scalar_one_or_none()
    if user_id is None:
        logger.warning("No active Zoho account found")
        return None

    tokens = get_valid_zoho_tokens(db, user_id, oauth_client=oauth_client)
    if tokens is None:
        return None
    return tokens, user_id


def require_zoho_tokens(db: Session, user_id: UUID, *, oauth_client: ZohoOAuthClient | None = None) -> ZohoTokens:
    tokens = get_valid_zoho_tokens(db, user_id, oauth_client=oauth_client)
    if tokens is None:
        raise ZohoAuthenticationError("zoho_tokens_unavailable", details={"user_id": str(user_id)})
    return tokens
