"""Gmail integration router.

Backend functions behind the recruiter's Gmail connection: connect, callback
exchange, status, refresh, disconnect, send and compose link. Each user
connects their own account.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from outreach.core.deps import get_current_session, get_db
from outreach.core.structured_logging import build_log_context
from outreach.schemas.auth import UserSession
from outreach.schemas.gmail import (
    ComposeLinkResponse,
    ConnectionStatusResponse,
    ConnectResponse,
    DisconnectResponse,
    ExchangeRequest,
    GmailErrorDetail,
    RefreshResponse,
    SendEmailRequest,
    SendEmailResponse,
)
from outreach.services import (
    gmail_auth_service,
    gmail_connection_service,
    gmail_send_pipeline,
    gmail_service,
)
from outreach.services.connection_attempt import ConnectionAttemptGuard, CookieAttemptStore
from outreach.services.gmail_connection_service import ConnectionCache
from outreach.services.gmail_errors import (
    AlreadyInProgressError,
    ExchangeFailedError,
    GmailIntegrationError,
    GmailNotConfiguredError,
    MissingParametersError,
    NotConnectedError,
    RedirectURIMismatchError,
    SendFailedError,
    SendValidationError,
)
from outreach.services.gmail_send_pipeline import SendRequest
from outreach.services.oauth_callback import CallbackParams, normalize_callback

router = APIRouter(prefix="/integrations/gmail", tags=["Gmail"])
logger = logging.getLogger(__name__)

ATTEMPT_COOKIE_PATH = "/integrations/gmail"

# Shared by every request in this process
connection_cache = ConnectionCache()

_STATUS_BY_ERROR: list[tuple[type[GmailIntegrationError], int]] = [
    (SendValidationError, status.HTTP_400_BAD_REQUEST),
    (MissingParametersError, status.HTTP_400_BAD_REQUEST),
    (RedirectURIMismatchError, status.HTTP_400_BAD_REQUEST),
    (ExchangeFailedError, status.HTTP_400_BAD_REQUEST),
    (NotConnectedError, status.HTTP_409_CONFLICT),
    (AlreadyInProgressError, status.HTTP_409_CONFLICT),
    (GmailNotConfiguredError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SendFailedError, status.HTTP_502_BAD_GATEWAY),
]


def _error_response(exc: GmailIntegrationError, response: Response | None = None) -> JSONResponse:
    """JSON error body; keeps any cookies already set on the injected response."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break

    details: dict[str, Any] = dict(getattr(exc, "details", {}) or {})
    if isinstance(exc, RedirectURIMismatchError):
        details["attempted_uri"] = exc.attempted_uri

    body = GmailErrorDetail(
        error=type(exc).__name__,
        message=exc.message,
        remediation=exc.remediation,
        details=details,
    )
    error = JSONResponse(status_code=status_code, content=body.model_dump())
    if response is not None:
        for name, value in response.raw_headers:
            if name.lower() == b"set-cookie":
                error.raw_headers.append((name, value))
    return error


def _attempt_guard(request: Request, response: Response) -> ConnectionAttemptGuard:
    return ConnectionAttemptGuard(CookieAttemptStore(request, response, path=ATTEMPT_COOKIE_PATH))


# ============================================================================
# OAuth
# ============================================================================

@router.get("/connect", response_model=ConnectResponse)
def gmail_connect(
    request: Request,
    response: Response,
    redirect_uri: str | None = None,
    session: UserSession = Depends(get_current_session),
) -> Any:
    """Get Gmail OAuth authorization URL.

    Frontend should redirect user to this URL.
    """
    guard = _attempt_guard(request, response)
    try:
        redirect = gmail_auth_service.begin_authorization(session.user_id, guard, redirect_uri)
    except GmailIntegrationError as exc:
        return _error_response(exc, response)
    return ConnectResponse(auth_url=redirect.auth_url)


@router.post("/exchange", response_model=ConnectionStatusResponse)
async def gmail_exchange(
    payload: ExchangeRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> Any:
    """Complete the connection with what Google sent back to the frontend.

    Accepts the full callback URL (query or fragment delivery) or explicit
    code/state.
    """
    if payload.callback_url:
        params = normalize_callback(payload.callback_url)
    else:
        params = CallbackParams(code=payload.code, state=payload.state, error=payload.error)

    guard = _attempt_guard(request, response)
    try:
        await gmail_auth_service.complete_authorization(db, session.user_id, params, guard)
    except GmailIntegrationError as exc:
        return _error_response(exc, response)

    connection_cache.invalidate(session.user_id)
    current = gmail_connection_service.check_connection(db, session.user_id)
    return _status_response(current)


# ============================================================================
# Connection state
# ============================================================================

def _status_response(current: gmail_connection_service.ConnectionStatus) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(
        connected=current.connected,
        expired=current.expired,
        token_present=current.token_present,
        needs_refresh=current.needs_refresh,
        has_refresh_token=current.has_refresh_token,
    )


@router.get("/status", response_model=ConnectionStatusResponse)
def gmail_connection_status(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> ConnectionStatusResponse:
    """Check if current user has Gmail connected."""
    current = gmail_connection_service.check_connection(db, session.user_id)
    logger.info(
        "Gmail connection status connected=%s expired=%s",
        current.connected,
        current.expired,
        extra=build_log_context(user_id=str(session.user_id), route="/integrations/gmail/status"),
    )
    return _status_response(current)


@router.post("/refresh", response_model=RefreshResponse)
async def gmail_refresh(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> RefreshResponse:
    """Renew the access token. success=false means the user must reconnect."""
    connection_cache.invalidate(session.user_id)
    refreshed = await gmail_connection_service.refresh(db, session.user_id)
    return RefreshResponse(success=refreshed)


@router.delete("", response_model=DisconnectResponse)
async def gmail_disconnect(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> DisconnectResponse:
    """Disconnect Gmail (revoke best effort, always delete locally)."""
    removed = await gmail_connection_service.disconnect(db, session.user_id, connection_cache)
    message = "Gmail disconnected" if removed else "Gmail was not connected"
    return DisconnectResponse(success=True, message=message)


# ============================================================================
# Sending
# ============================================================================

def _to_send_request(payload: SendEmailRequest) -> SendRequest:
    return SendRequest(**payload.model_dump())


@router.post("/send", response_model=SendEmailResponse)
async def gmail_send(
    payload: SendEmailRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> Any:
    """Send an outreach email from the user's Gmail, threaded per job and candidate."""
    try:
        result = await gmail_send_pipeline.send(
            db, session.user_id, _to_send_request(payload), cache=connection_cache
        )
    except GmailIntegrationError as exc:
        return _error_response(exc)
    return SendEmailResponse(
        thread_id=result.thread_id,
        message_id=result.message_id,
        rfc_message_id=result.rfc_message_id,
    )


@router.post("/compose-link", response_model=ComposeLinkResponse)
def gmail_compose_link(
    payload: SendEmailRequest,
    session: UserSession = Depends(get_current_session),
) -> Any:
    """Gmail web compose link for sending by hand (nothing is sent or tracked)."""
    request = _to_send_request(payload)
    try:
        url = gmail_send_pipeline.compose_externally(request)
    except GmailIntegrationError as exc:
        return _error_response(exc)
    subject = request.subject or gmail_send_pipeline.default_subject(request)
    return ComposeLinkResponse(
        url=url,
        thread_search_url=gmail_service.build_thread_search_url(subject),
    )
