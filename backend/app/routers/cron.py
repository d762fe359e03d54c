"""Scheduler-triggered maintenance endpoints guarded by the cron bearer secret."""

from __future__ import annotations

import datetime as dt
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import require_cron_secret
from app.db.session import get_db
from app.schemas.cron import CleanAuthLogsResponse, CronRefreshResponse, RefreshErrorOut, RefreshResultsOut
from app.services.audit import clean_old_auth_logs
from app.services.token_refresh import BatchRefreshResult, run_batch_refresh

router = APIRouter(dependencies=[Depends(require_cron_secret)])
logger = logging.getLogger(__name__)


def _results_out(results: BatchRefreshResult) -> RefreshResultsOut:
    return RefreshResultsOut(
        total_processed=results.total_processed,
        refreshed=results.refreshed,
        failed=results.failed,
        errors=[RefreshErrorOut(user_id=item.user_id, error=item.error) for item in results.errors],
    )


@router.get("/refresh-tokens", response_model=CronRefreshResponse)
def refresh_tokens(db: Session = Depends(get_db)):
    results = BatchRefreshResult()
    try:
        run_batch_refresh(db, results=results)
    except Exception as exc:
        logger.exception("Zoho batch refresh aborted")
        db.rollback()
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) or exc.__class__.__name__,
                "results": _results_out(results).model_dump(mode="json", by_alias=True),
            },
        )

    return CronRefreshResponse(
        success=True,
        timestamp=dt.datetime.now(dt.timezone.utc),
        results=_results_out(results),
    )


@router.get("/clean-auth-logs", response_model=CleanAuthLogsResponse)
def clean_auth_logs(
    days: int | None = Query(default=None, ge=1, le=3650),
    db: Session = Depends(get_db),
) -> CleanAuthLogsResponse:
    deleted, cutoff = clean_old_auth_logs(db, days or settings.AUTH_LOG_RETENTION_DAYS)
    return CleanAuthLogsResponse(success=True, deleted=deleted, cutoff_date=cutoff)
