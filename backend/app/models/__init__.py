"""Convenience imports for Alembic metadata discovery."""

from app.models.user import User
from app.models.account import LinkedAccount
from app.models.auth_audit_log import AuthAuditLog  # noqa: F401
