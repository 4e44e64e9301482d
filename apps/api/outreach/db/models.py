"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from outreach.db.base import Base, TimestampMixin


class GmailCredential(TimestampMixin, Base):
    """
    Per-user Gmail OAuth credential.

    At most one row per user. Tokens are Fernet-encrypted. A row without a
    refresh token cannot be renewed silently; the user must reconnect.
    """

    __tablename__ = "gmail_credentials"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    token_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class CandidateEmailThread(TimestampMixin, Base):
    """
    Gmail conversation per (user, job, candidate).

    Created on the first successful send for the context, then only updated:
    thread_id is stable, message ids rotate with every send.
    """

    __tablename__ = "candidate_email_threads"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    job_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    candidate_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Gmail's internal id of the latest message
    message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Message-ID header of the latest message (used for In-Reply-To/References)
    rfc_message_id: Mapped[str | None] = mapped_column(String(998), nullable=True)
    __table_args__ = (
        UniqueConstraint("user_id", "job_id", "candidate_id"),
        Index("idx_candidate_email_threads_candidate", "candidate_id"),
    )
