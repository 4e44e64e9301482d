"""Gmail credential storage.

One credential per user. Every write replaces the whole record so concurrent
writers (connect, refresh, disconnect) never leave a half-updated row.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from outreach.core.encryption import decrypt_token, encrypt_token
from outreach.core.structured_logging import build_log_context
from outreach.db.models import GmailCredential

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredTokens:
    """Decrypted view of a stored credential."""

    user_id: uuid.UUID
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    account_email: str | None


def get_credential(db: Session, user_id: uuid.UUID) -> GmailCredential | None:
    """Get a user's Gmail credential."""
    return db.query(GmailCredential).filter(GmailCredential.user_id == user_id).first()


def get_tokens(db: Session, user_id: uuid.UUID) -> StoredTokens | None:
    """Get decrypted tokens for a user, or None when not connected."""
    credential = get_credential(db, user_id)
    if not credential:
        return None
    refresh = (
        decrypt_token(credential.refresh_token_encrypted)
        if credential.refresh_token_encrypted
        else None
    )
    return StoredTokens(
        user_id=user_id,
        access_token=decrypt_token(credential.access_token_encrypted),
        refresh_token=refresh,
        expires_at=credential.token_expires_at,
        account_email=credential.account_email,
    )


def save_credential(
    db: Session,
    user_id: uuid.UUID,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
    token_type: str | None = None,
    scope: str | None = None,
    account_email: str | None = None,
) -> GmailCredential:
    """
    Store a credential, replacing any existing one for the user.

    Every field is overwritten, including refresh_token. Callers that want to
    keep the existing refresh token (token refresh) must pass it back in.
    """
    token_expires_at = None
    if expires_in:
        token_expires_at = _now_utc() + timedelta(seconds=int(expires_in))

    def fill(credential: GmailCredential) -> GmailCredential:
        credential.access_token_encrypted = encrypt_token(access_token)
        credential.refresh_token_encrypted = encrypt_token(refresh_token) if refresh_token else None
        credential.token_expires_at = token_expires_at
        credential.token_type = token_type
        credential.scope = scope
        credential.account_email = account_email
        credential.updated_at = _now_utc()
        return credential

    credential = get_credential(db, user_id)
    if credential is None:
        credential = fill(GmailCredential(user_id=user_id))
        try:
            db.add(credential)
            db.commit()
        except IntegrityError:
            # A concurrent connect inserted first; overwrite its row (last write wins)
            db.rollback()
            credential = get_credential(db, user_id)
            if credential is None:
                raise
            fill(credential)
            db.commit()
    else:
        fill(credential)
        db.commit()

    db.refresh(credential)
    logger.info("Stored Gmail credential", extra=build_log_context(user_id=str(user_id)))
    return credential


def delete_credential(db: Session, user_id: uuid.UUID) -> bool:
    """Delete a user's credential. Returns False if there was none."""
    credential = get_credential(db, user_id)
    if credential:
        db.delete(credential)
        db.commit()
        return True
    return False
