"""Error taxonomy for the Gmail connection and send pipeline.

Every error carries a human-readable ``message`` and a ``remediation`` hint so
callers can tell "not connected" (reconnect), "connection pending" (wait) and
"send failed" (retry) apart.
"""

from typing import Any


class Remediation:
    CONNECT = "connect"
    WAIT = "wait"
    RETRY = "retry"
    FIX_INPUT = "fix_input"
    CONTACT_ADMIN = "contact_admin"


class GmailIntegrationError(Exception):
    """Base class for Gmail integration failures."""

    remediation = Remediation.RETRY
    default_message = "An error occurred with Gmail. Please try again later."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class SendValidationError(GmailIntegrationError):
    remediation = Remediation.FIX_INPUT
    default_message = "The email is missing required information."


class NotConnectedError(GmailIntegrationError):
    remediation = Remediation.CONNECT
    default_message = "Gmail is not connected. Please connect or reconnect your account."


class AlreadyInProgressError(GmailIntegrationError):
    remediation = Remediation.WAIT
    default_message = (
        "A Gmail connection attempt is already in progress. "
        "Finish it or wait a few minutes before trying again."
    )


class GmailNotConfiguredError(GmailIntegrationError):
    remediation = Remediation.CONTACT_ADMIN
    default_message = "Gmail integration not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET."


class RedirectURIMismatchError(GmailIntegrationError):
    """The redirect URI does not match the one registered with Google."""

    remediation = Remediation.CONTACT_ADMIN

    def __init__(
        self,
        attempted_uri: str,
        details: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        self.attempted_uri = attempted_uri
        self.details = details or {}
        super().__init__(
            message
            or f"Redirect URI mismatch: {attempted_uri} is not the registered callback URI."
        )


class ExchangeFailedError(GmailIntegrationError):
    """Google rejected the authorization code (expired, reused or mismatched)."""

    remediation = Remediation.CONNECT

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.details = details or {}
        super().__init__(message or "Failed to complete Gmail connection.")


class InvalidStateError(ExchangeFailedError):
    pass


class MissingParametersError(GmailIntegrationError):
    remediation = Remediation.CONNECT
    default_message = "The Gmail callback is missing the authorization code or state."


class SendFailedError(GmailIntegrationError):
    """Provider or transport failure while sending. ``message`` is the provider's text."""

    remediation = Remediation.RETRY

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message or "Failed to send email.")


# =============================================================================
# Provider transport errors (translated by the services above)
# =============================================================================


class OAuthProviderError(Exception):
    """Non-2xx response (or transport failure) from Google's OAuth endpoints."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)

    @property
    def error_code(self) -> str | None:
        error = self.payload.get("error")
        return error if isinstance(error, str) else None


class GmailApiError(Exception):
    """Failure response from the Gmail send function."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


TOKEN_ERROR_MARKERS = ("token expired", "not connected")


def is_token_error(error: GmailApiError) -> bool:
    """True when the send failed because the access token is expired or missing."""
    if error.status_code == 401:
        return True
    text = error.message.lower()
    return any(marker in text for marker in TOKEN_ERROR_MARKERS)
