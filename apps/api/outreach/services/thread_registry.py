"""Per (user, job, candidate) Gmail thread tracking for reply threading."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from outreach.core.structured_logging import build_log_context
from outreach.db.models import CandidateEmailThread

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreadContext:
    job_id: uuid.UUID | None
    candidate_id: uuid.UUID | None

    @property
    def is_tracked(self) -> bool:
        return self.job_id is not None and self.candidate_id is not None


@dataclass(frozen=True)
class ThreadHint:
    thread_id: str | None
    message_id: str | None
    rfc_message_id: str | None = None


def _get_entry(
    db: Session, user_id: uuid.UUID, context: ThreadContext
) -> CandidateEmailThread | None:
    return (
        db.query(CandidateEmailThread)
        .filter(
            CandidateEmailThread.user_id == user_id,
            CandidateEmailThread.job_id == context.job_id,
            CandidateEmailThread.candidate_id == context.candidate_id,
        )
        .first()
    )


def lookup(db: Session, user_id: uuid.UUID, context: ThreadContext) -> ThreadHint | None:
    """Thread hints for the context, or None when no conversation exists yet."""
    if not context.is_tracked:
        return None
    entry = _get_entry(db, user_id, context)
    if entry is None:
        return None
    return ThreadHint(
        thread_id=entry.thread_id,
        message_id=entry.message_id,
        rfc_message_id=entry.rfc_message_id,
    )


def record(
    db: Session,
    user_id: uuid.UUID,
    context: ThreadContext,
    thread_id: str,
    message_id: str | None,
    rfc_message_id: str | None = None,
) -> CandidateEmailThread | None:
    """
    Upsert thread info after a successful send.

    Untracked sends (no job or candidate) are not persisted. Last write wins
    between concurrent sends for the same context.
    """
    if not context.is_tracked:
        return None

    log_context = build_log_context(
        user_id=str(user_id),
        job_id=str(context.job_id),
        candidate_id=str(context.candidate_id),
    )
    entry = _get_entry(db, user_id, context)
    if entry is None:
        entry = CandidateEmailThread(
            user_id=user_id,
            job_id=context.job_id,
            candidate_id=context.candidate_id,
            thread_id=thread_id,
            message_id=message_id,
            rfc_message_id=rfc_message_id,
        )
        try:
            db.add(entry)
            db.commit()
        except IntegrityError:
            # A concurrent send created the row first; update it below
            db.rollback()
            entry = _get_entry(db, user_id, context)
            if entry is None:
                raise
        else:
            db.refresh(entry)
            return entry

    if entry.thread_id != thread_id:
        logger.warning(
            "Gmail started a new thread for an existing conversation (%s -> %s)",
            entry.thread_id,
            thread_id,
            extra=log_context,
        )
        entry.thread_id = thread_id

    entry.message_id = message_id
    entry.rfc_message_id = rfc_message_id
    entry.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(entry)
    return entry
