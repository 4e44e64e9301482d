"""Gmail connection state: status check, silent refresh and disconnect."""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import Session

from outreach.core.config import settings
from outreach.core.encryption import decrypt_token
from outreach.core.structured_logging import build_log_context
from outreach.services import google_oauth, token_store
from outreach.services.gmail_errors import OAuthProviderError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _is_expired(expires_at: datetime | None, margin_seconds: int, now: datetime) -> bool:
    """True if expires_at falls within margin of now (naive datetimes are UTC)."""
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now + timedelta(seconds=margin_seconds)


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    expired: bool
    has_refresh_token: bool
    token_present: bool

    @property
    def needs_refresh(self) -> bool:
        return self.connected and self.expired

    @property
    def usable(self) -> bool:
        return self.connected and not self.expired


DISCONNECTED = ConnectionStatus(
    connected=False, expired=False, has_refresh_token=False, token_present=False
)


def check_connection(
    db: Session,
    user_id: uuid.UUID,
    *,
    now: datetime | None = None,
    margin_seconds: int | None = None,
) -> ConnectionStatus:
    """Read-only check of the stored credential. Never calls Google."""
    credential = token_store.get_credential(db, user_id)
    if credential is None:
        return DISCONNECTED

    margin = settings.GMAIL_EXPIRY_MARGIN_SECONDS if margin_seconds is None else margin_seconds
    token_present = bool(credential.access_token_encrypted)
    return ConnectionStatus(
        connected=token_present,
        expired=_is_expired(credential.token_expires_at, margin, now or _now_utc()),
        has_refresh_token=bool(credential.refresh_token_encrypted),
        token_present=token_present,
    )


async def refresh(db: Session, user_id: uuid.UUID) -> bool:
    """
    Renew the access token with the stored refresh token.

    On any failure the stored credential is left untouched and False is
    returned; the caller falls back to a full reconnect.
    """
    context = build_log_context(user_id=str(user_id))
    credential = token_store.get_credential(db, user_id)
    if credential is None or not credential.refresh_token_encrypted:
        return False

    try:
        refresh_token = decrypt_token(credential.refresh_token_encrypted)
    except ValueError as exc:
        logger.error("Stored Gmail refresh token unreadable: %s", exc, extra=context)
        return False

    try:
        result = await google_oauth.refresh_access_token(refresh_token)
    except OAuthProviderError as exc:
        logger.warning("Gmail token refresh failed: %s", exc, extra=context)
        return False

    access_token = result.get("access_token")
    if not access_token:
        logger.warning("Gmail token refresh returned no access token", extra=context)
        return False

    token_store.save_credential(
        db,
        user_id,
        access_token=access_token,
        # Google only rotates the refresh token occasionally
        refresh_token=result.get("refresh_token") or refresh_token,
        expires_in=result.get("expires_in"),
        token_type=result.get("token_type") or credential.token_type,
        scope=result.get("scope") or credential.scope,
        account_email=credential.account_email,
    )
    logger.info("Gmail token refreshed", extra=context)
    return True


async def disconnect(
    db: Session,
    user_id: uuid.UUID,
    cache: "ConnectionCache | None" = None,
) -> bool:
    """
    Revoke at Google (best effort) and delete the local credential.

    The local delete always happens, even when revoke fails. Returns False if
    there was nothing to disconnect.
    """
    context = build_log_context(user_id=str(user_id))
    if cache is not None:
        cache.invalidate(user_id)

    credential = token_store.get_credential(db, user_id)
    if credential is None:
        return False

    try:
        # Revoking the refresh token revokes the whole grant
        token = decrypt_token(
            credential.refresh_token_encrypted or credential.access_token_encrypted
        )
        await google_oauth.revoke_token(token)
    except Exception as exc:
        logger.warning("Gmail token revoke failed, deleting locally anyway: %s", exc, extra=context)

    token_store.delete_credential(db, user_id)
    logger.info("Gmail disconnected", extra=context)
    return True


class ConnectionCache:
    """
    Short-lived cache of usable-connection verdicts.

    Only positive verdicts are cached. Any observed send failure must call
    invalidate().
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            settings.GMAIL_CONNECTION_CACHE_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock
        self._entries: dict[uuid.UUID, float] = {}

    def is_fresh(self, user_id: uuid.UUID) -> bool:
        checked_at = self._entries.get(user_id)
        if checked_at is None:
            return False
        if self._clock() - checked_at >= self.ttl_seconds:
            self._entries.pop(user_id, None)
            return False
        return True

    def mark_connected(self, user_id: uuid.UUID) -> None:
        self._entries[user_id] = self._clock()

    def invalidate(self, user_id: uuid.UUID) -> None:
        self._entries.pop(user_id, None)
