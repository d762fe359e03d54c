"""Service helpers for user administration and profile updates."""

from __future__ import annotations

from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import BadRequestError, ConflictError, InvalidCredentialsError, NotFoundError
from app.core.security import hash_password, verify_password
from app.models.enums import AuthEvent, AuthProvider
from app.models.user import User
from app.schemas.user import CurrentUserUpdate, UserCreate
from app.services.audit import record_auth_event
from app.services.session import find_user_by_email

logger = logging.getLogger(__name__)


def list_users(db: Session) -> list[User]:
    return list(db.execute(select(User).order_by(User.created_at.desc())).scalars().all())


def get_user(db: Session, user_id: UUID) -> User | None:
    return db.get(User, user_id)


def create_user(db: Session, data: UserCreate) -> User:
    if find_user_by_email(db, data.email):
        raise ConflictError("email_exists", details={"email": data.email})
    user = User(
        email=data.email,
        name=data.name,
        role=data.role,
        country=data.country,
        is_active=data.is_active,
        password_hash=hash_password(data.password) if data.password else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User created: %s (%s)", user.email, user.role.value)
    return user


def set_active(db: Session, user_id: UUID, is_active: bool) -> User | None:
    user = db.get(User, user_id)
    if not user:
        logger.warning("User activation update failed (not found): %s", user_id)
        return None
    user.is_active = is_active
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s: %s", "activated" if is_active else "deactivated", user.email)
    return user


def revoke_user_sessions(
    db: Session,
    *,
    actor: User,
    target_user_id: UUID,
    deactivate: bool = False,
) -> User:
    """Record an admin revocation; sessions are stateless, so deactivation is what cuts access."""
    if target_user_id == actor.id:
        raise BadRequestError("cannot_revoke_own_session")

    target = db.get(User, target_user_id)
    if not target:
        raise NotFoundError("user_not_found", details={"user_id": str(target_user_id)})

    if deactivate and target.is_active:
        target.is_active = False
        db.add(target)
        db.commit()
        db.refresh(target)

    record_auth_event(
        db,
        AuthEvent.session_revoked,
        user_id=target.id,
        email=target.email,
        provider=AuthProvider.admin_action,
        metadata={
            "revokedBy": str(actor.id),
            "revokedByEmail": actor.email,
            "deactivated": bool(deactivate),
        },
    )
    logger.info("Sessions revoked for %s by %s", target.email, actor.email)
    return target


def update_current_user(db: Session, user: User, data: CurrentUserUpdate) -> User:
    if data.new_password:
        if not user.password_hash:
            raise BadRequestError("password_not_configured")
        if not verify_password(data.current_password or "", user.password_hash):
            raise InvalidCredentialsError("invalid_current_password")
        user.password_hash = hash_password(data.new_password)

    if data.name:
        user.name = data.name
    if data.image is not None:
        user.image = data.image
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Profile updated: %s", user.email)
    return user
