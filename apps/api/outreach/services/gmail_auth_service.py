"""Gmail OAuth authorization-code handshake.

begin_authorization hands back the Google consent URL; complete_authorization
exchanges the returned code, stores the credential and always releases the
connection-attempt guard.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from outreach.core.config import settings
from outreach.core.security import create_oauth_state, verify_oauth_state
from outreach.core.structured_logging import build_log_context
from outreach.db.models import GmailCredential
from outreach.services import google_oauth, token_store
from outreach.services.connection_attempt import ConnectionAttemptGuard
from outreach.services.gmail_errors import (
    AlreadyInProgressError,
    ExchangeFailedError,
    GmailNotConfiguredError,
    InvalidStateError,
    MissingParametersError,
    OAuthProviderError,
    RedirectURIMismatchError,
)
from outreach.services.oauth_callback import CallbackParams

logger = logging.getLogger(__name__)

REDIRECT_MISMATCH_ERROR = "redirect_uri_mismatch"


@dataclass(frozen=True)
class AuthorizationRedirect:
    auth_url: str
    state: str
    redirect_uri: str


def _resolve_redirect_uri(requested: str | None) -> str:
    registered = settings.GMAIL_REDIRECT_URI
    if requested and requested != registered:
        raise RedirectURIMismatchError(
            requested,
            details={"registered_uri": registered, "requested_uri": requested},
        )
    return registered


def begin_authorization(
    user_id: uuid.UUID,
    guard: ConnectionAttemptGuard,
    redirect_uri: str | None = None,
) -> AuthorizationRedirect:
    """
    Start a Gmail connection.

    Raises:
        GmailNotConfiguredError: OAuth client not configured
        AlreadyInProgressError: Another attempt from this client is still live
        RedirectURIMismatchError: Caller's redirect URI is not the registered one
    """
    if not settings.gmail_configured:
        raise GmailNotConfiguredError()

    if not guard.try_acquire():
        raise AlreadyInProgressError()

    try:
        resolved_uri = _resolve_redirect_uri(redirect_uri)
        state = create_oauth_state(user_id)
        auth_url = google_oauth.build_auth_url(resolved_uri, state)
    except Exception:
        guard.release()
        raise

    logger.info(
        "Generated Gmail auth URL (redirect_uri=%s)",
        resolved_uri,
        extra=build_log_context(user_id=str(user_id)),
    )
    return AuthorizationRedirect(auth_url=auth_url, state=state, redirect_uri=resolved_uri)


def _translate_exchange_error(exc: OAuthProviderError, redirect_uri: str) -> Exception:
    if exc.error_code == REDIRECT_MISMATCH_ERROR:
        return RedirectURIMismatchError(
            redirect_uri,
            details={"provider_response": exc.payload, "status_code": exc.status_code},
        )
    return ExchangeFailedError(
        f"Failed to exchange authorization code: {exc}",
        details={"provider_response": exc.payload, "status_code": exc.status_code},
    )


async def _lookup_account_email(access_token: str, user_id: uuid.UUID) -> str | None:
    try:
        return await google_oauth.get_user_email(access_token)
    except Exception as exc:
        logger.warning(
            "Could not look up Gmail account address: %s",
            exc,
            extra=build_log_context(user_id=str(user_id)),
        )
        return None


async def _verify_fragment_token(access_token: str, user_id: uuid.UUID) -> str:
    """Account address for a fragment-delivered token; raises if Google rejects it."""
    try:
        account_email = await google_oauth.get_user_email(access_token)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(
            "Gmail fragment token rejected by Google: %s",
            exc,
            extra=build_log_context(user_id=str(user_id)),
        )
        raise ExchangeFailedError("Google did not accept the returned access token") from exc
    if not account_email:
        raise ExchangeFailedError("Google did not accept the returned access token")
    return account_email


def _reusable_refresh_token(db: Session, user_id: uuid.UUID, account_email: str) -> str | None:
    """Keep the stored refresh token when the fragment token is for the same account."""
    existing = token_store.get_tokens(db, user_id)
    if existing and existing.refresh_token and existing.account_email == account_email:
        return existing.refresh_token
    return None


async def complete_authorization(
    db: Session,
    user_id: uuid.UUID,
    params: CallbackParams,
    guard: ConnectionAttemptGuard | None = None,
) -> GmailCredential:
    """
    Finish a Gmail connection from normalized callback parameters.

    A rejected or replayed code fails before anything is written, so an
    existing credential stays intact. The guard is released on every path.

    Raises:
        ExchangeFailedError: Provider error on callback, rejected code, or a
            fragment token Google does not accept
        InvalidStateError: State forged, expired or issued to another user
        MissingParametersError: Code (or token) or state absent
        RedirectURIMismatchError: Google reports redirect_uri_mismatch
    """
    context = build_log_context(user_id=str(user_id))
    try:
        if params.error:
            raise ExchangeFailedError(
                f"OAuth error: {params.error}", details={"error": params.error}
            )
        if not params.state or not (params.code or params.access_token):
            raise MissingParametersError()

        valid, reason = verify_oauth_state(params.state, user_id)
        if not valid:
            raise InvalidStateError(reason)

        redirect_uri = settings.GMAIL_REDIRECT_URI
        if params.code:
            try:
                tokens: dict[str, Any] = await google_oauth.exchange_code(params.code, redirect_uri)
            except OAuthProviderError as exc:
                logger.warning("Gmail code exchange rejected: %s", exc, extra=context)
                raise _translate_exchange_error(exc, redirect_uri) from exc
            access_token = tokens.get("access_token")
            if not access_token:
                raise ExchangeFailedError(
                    "Token response did not include an access token",
                    details={"provider_response": {k: v for k, v in tokens.items() if "token" not in k}},
                )
            account_email = await _lookup_account_email(access_token, user_id)
            refresh_token = tokens.get("refresh_token")
        else:
            # Fragment delivery: nothing is written until Google accepts the token
            tokens = {"access_token": params.access_token, "expires_in": params.expires_in}
            access_token = params.access_token
            account_email = await _verify_fragment_token(access_token, user_id)
            refresh_token = _reusable_refresh_token(db, user_id, account_email)

        credential = token_store.save_credential(
            db,
            user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=tokens.get("expires_in"),
            token_type=tokens.get("token_type"),
            scope=tokens.get("scope"),
            account_email=account_email,
        )
        if not credential.refresh_token_encrypted:
            logger.warning(
                "Gmail connected without a refresh token; reconnect will be needed on expiry",
                extra=context,
            )
        logger.info("Gmail connected", extra=context)
        return credential
    finally:
        if guard is not None:
            guard.release()
