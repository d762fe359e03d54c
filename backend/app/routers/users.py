"""Admin endpoints for user management and session revocation."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.deps import require_permission
from app.core.exceptions import NotFoundError
from app.core.rate_limit import rate_limit
from app.db.session import get_db
from app.schemas.user import RevokeSessionRequest, RevokeSessionResponse, UserActiveUpdate, UserCreate, UserOut
from app.services.session import SessionContext
from app.services.users import create_user, list_users, revoke_user_sessions, set_active

router = APIRouter(dependencies=[Depends(rate_limit())])


@router.get("/", response_model=list[UserOut])
def get_users(
    _: SessionContext = Depends(require_permission("manage_users")),
    db: Session = Depends(get_db),
) -> list[UserOut]:
    return [UserOut.model_validate(u) for u in list_users(db)]


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreate,
    _: SessionContext = Depends(require_permission("manage_users")),
    db: Session = Depends(get_db),
) -> UserOut:
    return UserOut.model_validate(create_user(db, payload))


@router.patch("/{user_id}/active", response_model=UserOut)
def update_active(
    user_id: UUID,
    payload: UserActiveUpdate,
    _: SessionContext = Depends(require_permission("manage_users")),
    db: Session = Depends(get_db),
) -> UserOut:
    user = set_active(db, user_id, payload.is_active)
    if not user:
        raise NotFoundError("user_not_found", details={"user_id": str(user_id)})
    return UserOut.model_validate(user)


@router.post("/revoke-session", response_model=RevokeSessionResponse)
def revoke_session(
    payload: RevokeSessionRequest,
    session: SessionContext = Depends(require_permission("revoke_sessions")),
    db: Session = Depends(get_db),
) -> RevokeSessionResponse:
    target = revoke_user_sessions(
        db,
        actor=session.user,
        target_user_id=payload.user_id,
        deactivate=payload.deactivate,
    )
    return RevokeSessionResponse(
        success=True,
        message=f"Session revocation recorded for {target.email}",
        user=UserOut.model_validate(target),
    )
