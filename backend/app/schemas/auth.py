"""Auth-related schemas (login payload, session view)."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.sanitize import clean_email, has_control_chars
from app.models.enums import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return clean_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if has_control_chars(value):
            raise ValueError("password_contains_control_chars")
        if not value.strip():
            raise ValueError("password_required")
        return value


class SessionUserOut(BaseModel):
    id: UUID
    email: EmailStr
    name: str | None = None
    image: str | None = None
    role: UserRole
    is_active: bool


class SessionOut(BaseModel):
    user: SessionUserOut
    provider: str | None = None
    api_domain: str | None = None
    provider_token_expires_at: int | None = None


class MessageResponse(BaseModel):
    message: str
