"""Google OAuth endpoints for the per-user Gmail connection.

Pure transport: builds the consent URL and talks to the token, revoke and
userinfo endpoints. Persistence and flow control live in the services that
call these functions.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from outreach.core.config import settings
from outreach.services.gmail_errors import OAuthProviderError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/userinfo.email",
]

REQUEST_TIMEOUT = httpx.Timeout(15.0)


def build_auth_url(redirect_uri: str, state: str) -> str:
    """Generate the Gmail consent URL (offline access so a refresh token is issued)."""
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(GMAIL_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"error": "invalid_response", "error_description": response.text[:500]}
    return data if isinstance(data, dict) else {"error": "invalid_response"}


async def _post_token_endpoint(data: dict[str, str]) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
    except httpx.RequestError as exc:
        raise OAuthProviderError(f"Token endpoint unreachable: {exc}") from exc

    if response.is_error:
        payload = _error_payload(response)
        raise OAuthProviderError(
            payload.get("error_description") or payload.get("error") or "Token request failed",
            status_code=response.status_code,
            payload=payload,
        )
    return response.json()


async def exchange_code(code: str, redirect_uri: str) -> dict[str, Any]:
    """
    Exchange authorization code for tokens.

    Returns:
        Token response with access_token, refresh_token, expires_in, scope, token_type

    Raises:
        OAuthProviderError: If Google rejects the code
    """
    return await _post_token_endpoint(
        {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
    )


async def refresh_access_token(refresh_token: str) -> dict[str, Any]:
    """
    Exchange a refresh token for a new access token.

    Raises:
        OAuthProviderError: If the refresh token is revoked or invalid
    """
    return await _post_token_endpoint(
        {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
    )


async def revoke_token(token: str) -> None:
    """Revoke a token at Google. Raises OAuthProviderError on failure."""
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(
                GOOGLE_REVOKE_URL,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
    except httpx.RequestError as exc:
        raise OAuthProviderError(f"Revoke endpoint unreachable: {exc}") from exc

    if response.is_error:
        payload = _error_payload(response)
        raise OAuthProviderError(
            payload.get("error_description") or payload.get("error") or "Revoke failed",
            status_code=response.status_code,
            payload=payload,
        )


async def get_user_email(access_token: str) -> str | None:
    """Get the connected account's address from Google."""
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        email = response.json().get("email")
    return email.lower() if email else None
