"""Gmail sending service.

Uses the Gmail API to send email from the user's connected account. This is
the raw send function: one attempt, failures raised as GmailApiError. Retry
and thread bookkeeping belong to gmail_send_pipeline.
"""

import base64
import logging
import re
import uuid
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Any
from urllib.parse import quote, urlencode

import httpx
from sqlalchemy.orm import Session

from outreach.core.structured_logging import build_log_context
from outreach.services import token_store
from outreach.services.gmail_errors import GmailApiError

logger = logging.getLogger(__name__)

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
GMAIL_COMPOSE_URL = "https://mail.google.com/mail/"
GMAIL_SEARCH_URL = "https://mail.google.com/mail/u/0/#search/"

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class GmailSendResult:
    thread_id: str
    message_id: str
    rfc_message_id: str


def _as_angle_addr(message_id: str) -> str:
    message_id = message_id.strip()
    if message_id.startswith("<") and message_id.endswith(">"):
        return message_id
    return f"<{message_id}>"


def build_message(
    *,
    to: str,
    body: str,
    cc: str | None = None,
    subject: str | None = None,
    from_email: str | None = None,
    sender_name: str | None = None,
    in_reply_to: str | None = None,
    html: bool = True,
) -> tuple[MIMEText, str]:
    """
    Build the MIME message.

    Returns:
        (message, rfc_message_id). Subject is omitted when None (replies keep
        the thread's subject). in_reply_to anchors the message to a prior one.
    """
    msg = MIMEText(body, "html" if html else "plain", "utf-8")
    msg["To"] = to
    if cc:
        msg["Cc"] = cc
    if from_email:
        msg["From"] = formataddr((sender_name, from_email)) if sender_name else from_email
    if subject is not None:
        msg["Subject"] = subject

    domain = from_email.split("@", 1)[1] if from_email and "@" in from_email else "mail.gmail.com"
    rfc_message_id = make_msgid(domain=domain)
    msg["Message-ID"] = rfc_message_id

    if in_reply_to:
        reply_ref = _as_angle_addr(in_reply_to)
        msg["In-Reply-To"] = reply_ref
        msg["References"] = reply_ref

    return msg, rfc_message_id


async def _post_send(access_token: str, payload: dict[str, Any]) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as client:
        return await client.post(
            GMAIL_SEND_URL,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            json=payload,
        )


def _api_error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500], {}
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or ""), data
    if isinstance(error, str):
        return error, data
    return "", data if isinstance(data, dict) else {}


async def send_message(
    db: Session,
    user_id: uuid.UUID,
    *,
    to: str,
    body: str,
    cc: str | None = None,
    subject: str | None = None,
    sender_name: str | None = None,
    thread_id: str | None = None,
    in_reply_to: str | None = None,
    html: bool = True,
) -> GmailSendResult:
    """
    Send one email via the Gmail API.

    Raises:
        GmailApiError: Not connected, token rejected (status 401), other API or
            transport failure. The message text is safe to show to the user.
    """
    context = build_log_context(user_id=str(user_id))
    tokens = token_store.get_tokens(db, user_id)
    if tokens is None:
        raise GmailApiError("Gmail not connected")

    msg, rfc_message_id = build_message(
        to=to,
        body=body,
        cc=cc,
        subject=subject,
        from_email=tokens.account_email,
        sender_name=sender_name,
        in_reply_to=in_reply_to,
        html=html,
    )
    payload: dict[str, Any] = {"raw": base64.urlsafe_b64encode(msg.as_bytes()).decode()}
    if thread_id:
        payload["threadId"] = thread_id

    try:
        response = await _post_send(tokens.access_token, payload)
    except httpx.RequestError as exc:
        logger.error("Gmail API unreachable: %s", exc, extra=context)
        raise GmailApiError(f"Gmail API unreachable: {exc}") from exc

    if response.status_code == 401:
        raise GmailApiError("Gmail token expired. Please reconnect.", status_code=401)

    if response.is_error:
        detail, data = _api_error_message(response)
        logger.error("Gmail API error %s: %s", response.status_code, detail, extra=context)
        message = f"Gmail API error: {response.status_code}"
        if detail:
            message = f"{message} {detail}"
        raise GmailApiError(message, status_code=response.status_code, payload=data)

    data = response.json()
    message_id = data.get("id")
    if not message_id:
        raise GmailApiError("Gmail API returned no message id", status_code=response.status_code)

    return GmailSendResult(
        thread_id=data.get("threadId") or message_id,
        message_id=message_id,
        rfc_message_id=rfc_message_id,
    )


# ============================================================================
# Webmail deep links
# ============================================================================


def strip_html(body: str) -> str:
    return _TAG_RE.sub("", body)


def build_compose_url(to: str, subject: str, body: str, cc: str | None = None) -> str:
    """Gmail web compose link with the fields pre-filled (HTML stripped)."""
    params = {"view": "cm", "fs": "1", "to": to}
    if cc:
        params["cc"] = cc
    params["su"] = subject
    params["body"] = strip_html(body)
    return f"{GMAIL_COMPOSE_URL}?{urlencode(params, quote_via=quote)}"


def build_thread_search_url(subject: str) -> str:
    """Gmail web search for a conversation by subject."""
    return f"{GMAIL_SEARCH_URL}{quote(f'subject:({subject})', safe='')}"
