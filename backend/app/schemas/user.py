"""Pydantic schemas for user payloads and responses."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.core.sanitize import clean_email, clean_single_line, has_control_chars
from app.models.enums import UserRole

MAX_NAME_LEN = 80


def _validate_password(value: str | None) -> str | None:
    if value is None:
        return value
    if has_control_chars(value):
        raise ValueError("password_contains_control_chars")
    if not value.strip():
        raise ValueError("password_required")
    return value


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    name: str | None
    image: str | None
    role: UserRole
    country: str | None
    is_active: bool
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=2, max_length=MAX_NAME_LEN)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    role: UserRole = UserRole.seller
    country: str | None = Field(default=None, max_length=64)
    is_active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return clean_email(value)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        return clean_single_line(value)

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, value: str | None) -> str | None:
        return clean_single_line(value) or None

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str | None) -> str | None:
        return _validate_password(value)


class UserActiveUpdate(BaseModel):
    is_active: bool


class CurrentUserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=MAX_NAME_LEN)
    image: str | None = Field(default=None, max_length=1024)
    current_password: str | None = Field(default=None, max_length=128)
    new_password: str | None = Field(default=None, min_length=8, max_length=128)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: str | None) -> str | None:
        return clean_single_line(value) or None

    @field_validator("image", mode="before")
    @classmethod
    def normalize_image(cls, value: str | None) -> str | None:
        cleaned = clean_single_line(value)
        if cleaned and not cleaned.startswith(("https://", "http://")):
            raise ValueError("image_must_be_url")
        return cleaned or None

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str | None) -> str | None:
        return _validate_password(value)

    @model_validator(mode="after")
    def require_current_password(self) -> "CurrentUserUpdate":
        if self.new_password and not self.current_password:
            raise ValueError("current_password_required")
        return self


class RevokeSessionRequest(BaseModel):
    user_id: UUID
    deactivate: bool = False


class RevokeSessionResponse(BaseModel):
    success: bool
    message: str
    user: UserOut
