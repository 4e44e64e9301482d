"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database, recreated for each test
- Session token minting for authenticated requests
- HTTPX AsyncClient against the FastAPI app
- Helpers to seed Gmail credentials
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

# Settings are read at import time, so configure before importing outreach
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["GMAIL_REDIRECT_URI"] = "http://localhost:3000/auth/gmail-callback"
os.environ["GMAIL_OUTREACH_CC"] = "recruitment@theitbc.com"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from outreach.core.deps import get_db
from outreach.core.security import create_session_token
from outreach.db.base import Base
from outreach.db.models import GmailCredential
from outreach.db.session import SessionLocal, engine
from outreach.main import app
from outreach.services import token_store


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def user_id() -> uuid.UUID:
    return uuid.uuid4()


def seed_credential(
    db: Session,
    user_id: uuid.UUID,
    *,
    access_token: str = "access-token",
    refresh_token: str | None = "refresh-token",
    expires_in_seconds: int = 3600,
    account_email: str | None = "recruiter@theitbc.com",
) -> GmailCredential:
    """Store a credential whose expiry is ``expires_in_seconds`` from now (negative = past)."""
    credential = token_store.save_credential(
        db,
        user_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=3600,
        account_email=account_email,
    )
    credential.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds)
    db.commit()
    db.refresh(credential)
    return credential


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token = create_session_token(user_id, email="recruiter@theitbc.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
async def client(db: Session, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient."""
    from outreach.routers import integrations
    from outreach.services.gmail_connection_service import ConnectionCache

    monkeypatch.setattr(integrations, "connection_cache", ConnectionCache())

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    client: AsyncClient, auth_headers: dict[str, str]
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient carrying the user's bearer token."""
    client.headers.update(auth_headers)
    yield client


@pytest.fixture(scope="function")
def make_credential(db: Session, user_id: uuid.UUID):
    """Seed a credential for the test user; keyword args as in seed_credential."""

    def _make(**kwargs) -> GmailCredential:
        return seed_credential(db, user_id, **kwargs)

    return _make
