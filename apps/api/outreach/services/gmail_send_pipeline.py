"""Outbound candidate email over the user's Gmail connection.

One call to send() runs a fixed sequence: validate, make sure the connection
is usable (refreshing if needed), resolve thread hints, send, and record the
thread. A rejected token gets exactly one refresh-and-retry.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from outreach.core.config import settings
from outreach.core.structured_logging import build_log_context
from outreach.services import gmail_connection_service, gmail_service, thread_registry
from outreach.services.gmail_connection_service import ConnectionCache
from outreach.services.gmail_errors import (
    GmailApiError,
    NotConnectedError,
    SendFailedError,
    SendValidationError,
    is_token_error,
)
from outreach.services.gmail_service import GmailSendResult
from outreach.services.thread_registry import ThreadContext, ThreadHint

logger = logging.getLogger(__name__)

MAX_SEND_ATTEMPTS = 2
DEFAULT_JOB_TITLE = "General Position"


@dataclass(frozen=True)
class SendRequest:
    to: str | None
    subject: str | None
    body: str | None
    sender_name: str | None = None
    candidate_name: str | None = None
    job_title: str | None = None
    job_id: uuid.UUID | None = None
    candidate_id: uuid.UUID | None = None
    thread_id: str | None = None
    message_id: str | None = None
    rfc_message_id: str | None = None

    @property
    def context(self) -> ThreadContext:
        return ThreadContext(job_id=self.job_id, candidate_id=self.candidate_id)


def validate_request(request: SendRequest) -> None:
    if not request.to or not request.to.strip():
        raise SendValidationError("Missing recipient email address.")
    if not request.body or not request.body.strip():
        raise SendValidationError("The email body is empty. Please add some content before sending.")


def default_subject(request: SendRequest) -> str:
    title = request.job_title or DEFAULT_JOB_TITLE
    subject = f"{settings.GMAIL_SUBJECT_PREFIX} {title}"
    if request.candidate_name:
        subject = f"{subject} - {request.candidate_name}"
    return subject


async def ensure_connected(
    db: Session, user_id: uuid.UUID, cache: ConnectionCache | None = None
) -> None:
    """Raise NotConnectedError unless the user has a usable (or renewable) token."""
    if cache is not None and cache.is_fresh(user_id):
        return

    status = gmail_connection_service.check_connection(db, user_id)
    if not status.connected:
        raise NotConnectedError()
    if status.expired:
        if not status.has_refresh_token:
            raise NotConnectedError("Your Gmail authorization has expired. Please reconnect.")
        if not await gmail_connection_service.refresh(db, user_id):
            raise NotConnectedError("Your Gmail authorization has expired. Please reconnect.")

    if cache is not None:
        cache.mark_connected(user_id)


def resolve_thread_hint(db: Session, user_id: uuid.UUID, request: SendRequest) -> ThreadHint | None:
    """
    Explicit thread/message ids on the request win over the registry.

    message_id is Gmail's internal id; only rfc_message_id (the Message-ID
    header) is ever used for reply headers.
    """
    stored = thread_registry.lookup(db, user_id, request.context)
    if not (request.thread_id or request.message_id or request.rfc_message_id):
        return stored
    if stored is not None and request.thread_id not in (None, stored.thread_id):
        # Caller points at a different conversation than the one on record
        stored = None
    return ThreadHint(
        thread_id=request.thread_id or (stored.thread_id if stored else None),
        message_id=request.message_id or (stored.message_id if stored else None),
        rfc_message_id=request.rfc_message_id or (stored.rfc_message_id if stored else None),
    )


async def send(
    db: Session,
    user_id: uuid.UUID,
    request: SendRequest,
    *,
    cache: ConnectionCache | None = None,
) -> GmailSendResult:
    """
    Send an outreach email and track its thread.

    Raises:
        SendValidationError: Missing recipient or empty body (no network call made)
        NotConnectedError: No credential, or expired and not renewable
        SendFailedError: Provider or transport failure (provider text preserved)
    """
    validate_request(request)
    context = build_log_context(
        user_id=str(user_id),
        job_id=str(request.job_id) if request.job_id else None,
        candidate_id=str(request.candidate_id) if request.candidate_id else None,
    )

    await ensure_connected(db, user_id, cache)

    hint = resolve_thread_hint(db, user_id, request)
    replying = bool(hint and hint.thread_id)
    subject = None if replying else (request.subject or default_subject(request))
    in_reply_to = hint.rfc_message_id if hint else None

    for attempt in range(MAX_SEND_ATTEMPTS):
        try:
            result = await gmail_service.send_message(
                db,
                user_id,
                to=request.to.strip(),
                cc=settings.GMAIL_OUTREACH_CC or None,
                subject=subject,
                body=request.body,
                sender_name=request.sender_name,
                thread_id=hint.thread_id if replying else None,
                in_reply_to=in_reply_to,
            )
        except GmailApiError as exc:
            if cache is not None:
                cache.invalidate(user_id)
            last_attempt = attempt == MAX_SEND_ATTEMPTS - 1
            if last_attempt or not is_token_error(exc):
                logger.error(
                    "Gmail send failed: %s",
                    exc.message,
                    extra={**context, "attempt": attempt + 1},
                )
                raise SendFailedError(
                    exc.message, status_code=exc.status_code, details=exc.payload
                ) from exc

            logger.info("Gmail token rejected, refreshing and retrying once", extra=context)
            if not await gmail_connection_service.refresh(db, user_id):
                raise NotConnectedError(
                    "Your Gmail authorization has expired. Please reconnect."
                ) from exc
        else:
            thread_registry.record(
                db,
                user_id,
                request.context,
                thread_id=result.thread_id,
                message_id=result.message_id,
                rfc_message_id=result.rfc_message_id,
            )
            logger.info("Gmail outreach email sent", extra=context)
            return result

    raise SendFailedError()


def compose_externally(request: SendRequest) -> str:
    """
    Gmail web compose link for sending by hand.

    No connection check, no network call, no thread bookkeeping.
    """
    if not request.to or not request.to.strip():
        raise SendValidationError("Missing recipient email address.")
    return gmail_service.build_compose_url(
        to=request.to.strip(),
        cc=settings.GMAIL_OUTREACH_CC or None,
        subject=request.subject or default_subject(request),
        body=request.body or "",
    )
