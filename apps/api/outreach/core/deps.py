"""FastAPI dependencies for authentication and database access."""

from typing import Generator
from uuid import UUID

import jwt
from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from outreach.core.security import decode_session_token
from outreach.db.session import SessionLocal
from outreach.schemas.auth import UserSession


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_session(request: Request) -> UserSession:
    """
    Get the authenticated user from the auth provider's bearer token.

    Raises:
        HTTPException 401: Authentication failed
    """
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
        user_id = UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid session")

    return UserSession(user_id=user_id, email=payload.get("email") or "")
