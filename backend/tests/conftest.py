from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

# The engine is built at import time; point it at SQLite before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.security import hash_password  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.integrations.zoho.client import ZohoTokenGrant  # noqa: E402
from app.models import AuthAuditLog, LinkedAccount, User  # noqa: E402
from app.models.enums import AuthProvider, UserRole  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class FakeZohoClient:
    """Stands in for ZohoOAuthClient; answers per refresh token, raising when the answer is an exception."""

    def __init__(self, default, by_token: dict | None = None) -> None:  # noqa: ANN001
        self.default = default
        self.by_token = dict(by_token or {})
        self.calls: list[str] = []

    def refresh_access_token(self, refresh_token: str) -> ZohoTokenGrant:
        self.calls.append(refresh_token)
        result = self.by_token.get(refresh_token, self.default)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def fake_zoho():
    return FakeZohoClient


@pytest.fixture()
def make_user(db):
    def _make(
        email: str = "seller@combisales.com",
        *,
        role: UserRole = UserRole.seller,
        is_active: bool = True,
        password: str | None = None,
        name: str | None = "Test User",
    ) -> User:
        user = User(
            email=email,
            name=name,
            role=role,
            is_active=is_active,
            password_hash=hash_password(password) if password else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def link_zoho(db):
    def _link(
        user: User,
        *,
        expires_at: int,
        refresh_token: str | None = "refresh-1",
        access_token: str = "access-old",
        provider_account_id: str | None = None,
    ) -> LinkedAccount:
        account = LinkedAccount(
            user_id=user.id,
            provider=AuthProvider.zoho.value,
            provider_account_id=provider_account_id or f"zoho-{user.email}",
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            api_domain="https://www.zohoapis.eu",
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    return _link


@pytest.fixture()
def audit_rows(db):
    def _rows(event: str | None = None) -> list[AuthAuditLog]:
        db.expire_all()
        query = db.query(AuthAuditLog)
        if event is not None:
            query = query.filter(AuthAuditLog.event == event)
        return query.order_by(AuthAuditLog.created_at.asc()).all()

    return _rows


@pytest.fixture()
def client(session_factory):
    from fastapi.testclient import TestClient

    from app.db.session import get_db
    from app.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_header():
    from app.models.enums import AuthProvider
    from app.services.session import build_session_claims, issue_session_token

    def _header(user: User, provider: AuthProvider = AuthProvider.credentials) -> dict[str, str]:
        token = issue_session_token(build_session_claims(user, provider=provider))
        return {"Authorization": f"Bearer {token}"}

    return _header
