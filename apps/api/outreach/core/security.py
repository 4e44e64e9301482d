"""Security utilities for session tokens and OAuth state management."""

import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from outreach.core.config import settings


OAUTH_STATE_PURPOSE = "gmail_connect"


# =============================================================================
# Session Token (issued by the hosted auth provider)
# =============================================================================

def create_session_token(user_id: UUID, email: str = "", expires_hours: int = 1) -> str:
    """
    Create signed session JWT in the hosted auth provider's format.

    Used by local tooling and tests; production tokens come from the provider.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": "authenticated",
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Raises:
        jwt.InvalidTokenError: If token is invalid or expired
    """
    return jwt.decode(
        token, settings.JWT_SECRET, algorithms=["HS256"], audience="authenticated"
    )


# =============================================================================
# OAuth State (anti-forgery, bound to the owner)
# =============================================================================

def create_oauth_state(user_id: UUID, now: datetime | None = None) -> str:
    """
    Create a signed OAuth state value.

    Binds the owner id and an issue time so the callback can be matched to
    the user who started the flow and rejected once stale.
    """
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "purpose": OAUTH_STATE_PURPOSE,
        "nonce": secrets.token_urlsafe(16),
        "iat": issued,
        "exp": issued + timedelta(seconds=settings.GMAIL_OAUTH_STATE_MAX_AGE_SECONDS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def verify_oauth_state(state: str, user_id: UUID) -> tuple[bool, str]:
    """
    Verify OAuth callback state.

    Checks:
    1. Signature and expiry
    2. Purpose claim
    3. Owner id matches the user completing the flow

    Returns:
        (success, error_message)
    """
    try:
        payload = jwt.decode(state, settings.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return False, "Authorization request expired"
    except jwt.InvalidTokenError:
        return False, "Invalid state parameter"

    if payload.get("purpose") != OAUTH_STATE_PURPOSE:
        return False, "Invalid state parameter"

    if payload.get("sub") != str(user_id):
        return False, "State was issued to a different user"

    return True, ""
