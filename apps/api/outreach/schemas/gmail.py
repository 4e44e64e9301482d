"""Gmail integration request/response schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class ConnectResponse(BaseModel):
    auth_url: str


class ExchangeRequest(BaseModel):
    """Callback data posted by the client: the full callback URL, or code/state."""
    callback_url: str | None = None
    code: str | None = None
    state: str | None = None
    error: str | None = None


class ConnectionStatusResponse(BaseModel):
    connected: bool
    expired: bool
    token_present: bool
    needs_refresh: bool
    has_refresh_token: bool


class RefreshResponse(BaseModel):
    success: bool


class DisconnectResponse(BaseModel):
    success: bool
    message: str


class SendEmailRequest(BaseModel):
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    sender_name: str | None = None
    candidate_name: str | None = None
    job_title: str | None = None
    job_id: UUID | None = None
    candidate_id: UUID | None = None
    thread_id: str | None = None
    message_id: str | None = None
    rfc_message_id: str | None = None


class SendEmailResponse(BaseModel):
    thread_id: str
    message_id: str
    rfc_message_id: str


class ComposeLinkResponse(BaseModel):
    url: str
    thread_search_url: str


class GmailErrorDetail(BaseModel):
    """Error body: message for display, remediation for the UI's next action."""
    error: str
    message: str
    remediation: str
    details: dict = Field(default_factory=dict)
