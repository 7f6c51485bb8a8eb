"""
Exception types raised by the relay and mapped to HTTP responses in app.main.

Retrieval and transcript-logging failures are deliberately absent: they are
handled where they happen and never reach a caller.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for errors surfaced to HTTP callers."""

    status_code: int = 500
    public_message: str = "Internal server error"


class ConfigurationError(RelayError):
    """A required credential or endpoint is not configured."""

    status_code = 500
    public_message = "Server config error"


class UpstreamRejectionError(RelayError):
    """The completion provider answered with a non-success status."""

    status_code = 502
    public_message = "AI service error"

    def __init__(self, upstream_status: int, detail: Optional[str] = None):
        super().__init__(f"Upstream returned {upstream_status}")
        self.upstream_status = upstream_status
        self.detail = detail


class UpstreamUnavailableError(RelayError):
    """The completion provider could not be reached before streaming began."""

    status_code = 502
    public_message = "AI service unavailable"


class LogStoreError(RelayError):
    """Reading from the chat log store failed."""

    status_code = 500
    public_message = "Internal server error"


class EmailDeliveryError(RelayError):
    """The email provider rejected a contact message."""

    status_code = 502
    public_message = "Email send failed"
