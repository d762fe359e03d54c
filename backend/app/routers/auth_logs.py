"""Authentication audit log endpoint."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_session
from app.core.exceptions import BadRequestError, InsufficientPermissionsError
from app.core.rate_limit import rate_limit
from app.core.rbac import can_view_user_logs
from app.db.session import get_db
from app.schemas.audit import (
    AuthLogOut,
    SuspiciousActivityOut,
    SuspiciousActivityResponse,
    SystemAuthSummaryOut,
    SystemAuthSummaryResponse,
    UserAuthLogsResponse,
    UserAuthStatsOut,
)
from app.services.audit import (
    AuthLogQuery,
    detect_suspicious_activity,
    get_auth_logs,
    get_system_auth_summary,
    get_user_auth_stats,
)
from app.services.session import SessionContext

router = APIRouter(dependencies=[Depends(rate_limit())])

USER_LOG_LIMIT = 100


@router.get(
    "/logs",
    response_model=UserAuthLogsResponse | SuspiciousActivityResponse | SystemAuthSummaryResponse,
)
def read_auth_logs(
    log_type: str = Query(default="user", alias="type"),
    user_id: str | None = Query(default=None, alias="userId"),
    hours: int = Query(default=24, ge=1, le=24 * 365),
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
) -> UserAuthLogsResponse | SuspiciousActivityResponse | SystemAuthSummaryResponse:
    if not can_view_user_logs(session, user_id):
        raise InsufficientPermissionsError("forbidden")

    if log_type == "user":
        if user_id:
            try:
                target_id = UUID(user_id)
            except ValueError:
                raise BadRequestError("invalid_user_id", details={"userId": user_id})
        else:
            target_id = session.user_id
        logs = get_auth_logs(db, AuthLogQuery(user_id=target_id, limit=USER_LOG_LIMIT))
        stats = get_user_auth_stats(db, target_id)
        return UserAuthLogsResponse(
            logs=[AuthLogOut.model_validate(entry) for entry in logs],
            stats=UserAuthStatsOut.model_validate(stats),
        )

    if log_type == "suspicious":
        suspicious = detect_suspicious_activity(
            db,
            settings.SUSPICIOUS_WINDOW_MINUTES,
            settings.SUSPICIOUS_MAX_ATTEMPTS,
        )
        return SuspiciousActivityResponse(
            suspicious=[SuspiciousActivityOut.model_validate(item) for item in suspicious],
        )

    if log_type == "system":
        summary = get_system_auth_summary(db, hours)
        return SystemAuthSummaryResponse(summary=SystemAuthSummaryOut.model_validate(summary))

    raise BadRequestError("invalid_type_parameter", details={"type": log_type})
