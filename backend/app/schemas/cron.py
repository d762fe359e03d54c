"""Response schemas for scheduler-triggered endpoints."""

from __future__ import annotations

import datetime as dt

from pydantic import Field

from app.schemas.audit import CamelModel


class RefreshErrorOut(CamelModel):
    user_id: str
    error: str


class RefreshResultsOut(CamelModel):
    total_processed: int = 0
    refreshed: int = 0
    failed: int = 0
    errors: list[RefreshErrorOut] = Field(default_factory=list)


class CronRefreshResponse(CamelModel):
    success: bool
    timestamp: dt.datetime
    results: RefreshResultsOut


class CleanAuthLogsResponse(CamelModel):
    success: bool
    deleted: int
    cutoff_date: dt.datetime
