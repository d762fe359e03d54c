"""Response schemas for the authentication audit endpoints (camelCase on the wire)."""

from __future__ import annotations

import datetime as dt
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AuthLogOut(CamelModel):
    id: UUID
    user_id: UUID | None = None
    email: str | None = None
    event: str
    provider: str | None = None
    # ORM attribute is ``meta``; the column and the wire name are ``metadata``.
    meta: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("meta", "metadata"),
        serialization_alias="metadata",
    )
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: dt.datetime


class ProviderCountOut(CamelModel):
    provider: str | None = None
    count: int


class UserAuthStatsOut(CamelModel):
    total_logins: int
    failed_logins: int
    last_login: dt.datetime | None = None
    token_refreshes: int
    providers: list[ProviderCountOut] = Field(default_factory=list)


class SuspiciousActivityOut(CamelModel):
    email: str
    attempts: int
    logs: list[AuthLogOut] = Field(default_factory=list)


class EventCountOut(CamelModel):
    event: str
    count: int


class SystemAuthSummaryOut(CamelModel):
    period: str
    total_logins: int
    failed_logins: int
    success_rate: str
    unique_users: int
    token_refreshes: int
    events: list[EventCountOut] = Field(default_factory=list)


class UserAuthLogsResponse(CamelModel):
    logs: list[AuthLogOut]
    stats: UserAuthStatsOut


class SuspiciousActivityResponse(CamelModel):
    suspicious: list[SuspiciousActivityOut]


class SystemAuthSummaryResponse(CamelModel):
    summary: SystemAuthSummaryOut
