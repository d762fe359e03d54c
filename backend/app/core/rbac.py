"""Centralized RBAC policy for dashboard roles."""

from __future__ import annotations

from typing import Any

from app.models.enums import UserRole

Permission = str

ROLE_PERMISSIONS: dict[UserRole, set[Permission]] = {
    UserRole.admin: {"manage_users", "revoke_sessions"},
    UserRole.seller: set(),
    UserRole.dealer: set(),
    UserRole.inspector: set(),
}


def _role_of(subject: Any) -> UserRole | None:
    role = getattr(subject, "role", subject)
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role or "").strip().lower())
    except ValueError:
        return None


def has_permission(subject: Any, permission: Permission) -> bool:
    role = _role_of(subject)
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(role, set())


def is_admin(subject: Any) -> bool:
    return _role_of(subject) == UserRole.admin


def can_view_user_logs(subject: Any, target_user_id: str | None) -> bool:
    if is_admin(subject):
        return True
    if not target_user_id:
        return True
    return str(getattr(subject, "user_id", "")) == str(target_user_id)
