"""Authentication audit log: best-effort writer plus read-side reports."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.auth_audit_log import AuthAuditLog
from app.models.enums import AuthEvent, AuthProvider

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 50


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: dt.datetime | None) -> dt.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _enum_value(value: Any) -> str | None:
    if value is None:
        return None
    return str(value.value if hasattr(value, "value") else value)


def _as_uuid(value: UUID | str | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def record_auth_event(
    db: Session,
    event: AuthEvent | str,
    *,
    user_id: UUID | str | None = None,
    email: str | None = None,
    provider: AuthProvider | str | None = None,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthAuditLog | None:
    """Append one audit row. Never raises: audit logging must not break authentication."""
    try:
        entry = AuthAuditLog(
            user_id=_as_uuid(user_id),
            email=(email or "").strip().lower() or None,
            event=_enum_value(event),
            provider=_enum_value(provider),
            meta=metadata or {},
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception:  # noqa: BLE001
        logger.exception("Failed to write auth audit event %s for %s", _enum_value(event), email or user_id)
        try:
            db.rollback()
        except Exception:  # noqa: BLE001
            logger.exception("Rollback after failed audit write also failed")
        return None


@dataclass
class AuthLogQuery:
    user_id: UUID | str | None = None
    email: str | None = None
    event: AuthEvent | str | None = None
    provider: AuthProvider | str | None = None
    start_date: dt.datetime | None = None
    end_date: dt.datetime | None = None
    limit: int = DEFAULT_LOG_LIMIT


@dataclass
class ProviderCount:
    provider: str | None
    count: int


@dataclass
class UserAuthStats:
    total_logins: int
    failed_logins: int
    last_login: dt.datetime | None
    token_refreshes: int
    providers: list[ProviderCount] = field(default_factory=list)


@dataclass
class SuspiciousActivity:
    email: str
    attempts: int
    logs: list[AuthAuditLog]


@dataclass
class EventCount:
    event: str
    count: int


@dataclass
class SystemAuthSummary:
    period: str
    total_logins: int
    failed_logins: int
    success_rate: str
    unique_users: int
    token_refreshes: int
    events: list[EventCount] = field(default_factory=list)


def get_auth_logs(db: Session, query: AuthLogQuery | None = None) -> list[AuthAuditLog]:
    query = query or AuthLogQuery()
    stmt = select(AuthAuditLog)
    if query.user_id:
        stmt = stmt.where(AuthAuditLog.user_id == _as_uuid(query.user_id))
    if query.email:
        stmt = stmt.where(AuthAuditLog.email == query.email.strip().lower())
    if query.event:
        stmt = stmt.where(AuthAuditLog.event == _enum_value(query.event))
    if query.provider:
        stmt = stmt.where(AuthAuditLog.provider == _enum_value(query.provider))
    if query.start_date:
        stmt = stmt.where(AuthAuditLog.created_at >= _as_utc(query.start_date))
    if query.end_date:
        stmt = stmt.where(AuthAuditLog.created_at <= _as_utc(query.end_date))
    stmt = stmt.order_by(AuthAuditLog.created_at.desc()).limit(max(1, query.limit))
    return list(db.execute(stmt).scalars().all())


def _count(db: Session, *conditions: Any) -> int:
    stmt = select(func.count()).select_from(AuthAuditLog).where(*conditions)
    return int(db.execute(stmt).scalar_one())


def get_user_auth_stats(db: Session, user_id: UUID | str) -> UserAuthStats:
    uid = _as_uuid(user_id)
    success = AuthEvent.login_success.value

    last_login = db.execute(
        select(AuthAuditLog.created_at)
        .where(AuthAuditLog.user_id == uid, AuthAuditLog.event == success)
        .order_by(AuthAuditLog.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    provider_rows = db.execute(
        select(AuthAuditLog.provider, func.count())
        .where(AuthAuditLog.user_id == uid, AuthAuditLog.event == success)
        .group_by(AuthAuditLog.provider)
    ).all()

    return UserAuthStats(
        total_logins=_count(db, AuthAuditLog.user_id == uid, AuthAuditLog.event == success),
        failed_logins=_count(db, AuthAuditLog.user_id == uid, AuthAuditLog.event == AuthEvent.login_failed.value),
        last_login=_as_utc(last_login),
        token_refreshes=_count(
            db,
            AuthAuditLog.user_id == uid,
            AuthAuditLog.event == AuthEvent.token_refresh_success.value,
        ),
        providers=[ProviderCount(provider=provider, count=int(count)) for provider, count in provider_rows],
    )


def detect_suspicious_activity(
    db: Session,
    window_minutes: int | None = None,
    max_attempts: int | None = None,
    *,
    now: dt.datetime | None = None,
) -> list[SuspiciousActivity]:
    window = window_minutes if window_minutes is not None else settings.SUSPICIOUS_WINDOW_MINUTES
    threshold = max_attempts if max_attempts is not None else settings.SUSPICIOUS_MAX_ATTEMPTS
    since = (now or _utcnow()) - dt.timedelta(minutes=window)
    failed = AuthEvent.login_failed.value

    attempts = func.count(AuthAuditLog.id)
    grouped = db.execute(
        select(AuthAuditLog.email, attempts)
        .where(
            AuthAuditLog.event == failed,
            AuthAuditLog.created_at >= since,
            AuthAuditLog.email.is_not(None),
        )
        .group_by(AuthAuditLog.email)
        .having(attempts >= threshold)
        .order_by(attempts.desc(), AuthAuditLog.email.asc())
    ).all()

    report: list[SuspiciousActivity] = []
    for email, count in grouped:
        logs = db.execute(
            select(AuthAuditLog)
            .where(
                AuthAuditLog.email == email,
                AuthAuditLog.event == failed,
                AuthAuditLog.created_at >= since,
            )
            .order_by(AuthAuditLog.created_at.desc())
        ).scalars().all()
        report.append(SuspiciousActivity(email=email, attempts=int(count), logs=list(logs)))
    if report:
        logger.warning("Suspicious login activity detected for %d account(s)", len(report))
    return report


def _success_rate(total_logins: int, failed_logins: int) -> str:
    if total_logins <= 0:
        return "0"
    return f"{total_logins / (total_logins + failed_logins) * 100:.2f}"


def get_system_auth_summary(db: Session, hours: int = 24, *, now: dt.datetime | None = None) -> SystemAuthSummary:
    since = (now or _utcnow()) - dt.timedelta(hours=hours)
    in_window = AuthAuditLog.created_at >= since

    total_logins = _count(db, AuthAuditLog.event == AuthEvent.login_success.value, in_window)
    failed_logins = _count(db, AuthAuditLog.event == AuthEvent.login_failed.value, in_window)
    unique_users = int(
        db.execute(
            select(func.count(func.distinct(AuthAuditLog.user_id))).where(
                AuthAuditLog.event == AuthEvent.login_success.value,
                AuthAuditLog.user_id.is_not(None),
                in_window,
            )
        ).scalar_one()
    )
    event_rows = db.execute(
        select(AuthAuditLog.event, func.count())
        .where(in_window)
        .group_by(AuthAuditLog.event)
        .order_by(AuthAuditLog.event.asc())
    ).all()

    return SystemAuthSummary(
        period=f"Last {hours} hours",
        total_logins=total_logins,
        failed_logins=failed_logins,
        success_rate=_success_rate(total_logins, failed_logins),
        unique_users=unique_users,
        token_refreshes=_count(db, AuthAuditLog.event == AuthEvent.token_refresh_success.value, in_window),
        events=[EventCount(event=event, count=int(count)) for event, count in event_rows],
    )


def clean_old_auth_logs(db: Session, days_to_keep: int | None = None) -> tuple[int, dt.datetime]:
    """Retention cleanup: the only path allowed to delete audit rows."""
    days = days_to_keep if days_to_keep is not None else settings.AUTH_LOG_RETENTION_DAYS
    cutoff = _utcnow() - dt.timedelta(days=days)
    result = db.execute(delete(AuthAuditLog).where(AuthAuditLog.created_at < cutoff))
    db.commit()
    deleted = int(result.rowcount or 0)
    logger.info("Auth audit retention cleanup removed %d row(s) older than %s", deleted, cutoff.isoformat())
    return deleted, cutoff
