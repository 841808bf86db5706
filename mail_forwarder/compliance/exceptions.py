"""Custom exceptions for the compliance/mail platform client."""

from typing import Optional


class ComplianceError(Exception):
    """Base exception for all errors raised while talking to the platform.

    Callers decide per stage whether an error is fatal: the submitter turns
    it into SubmissionFailed, the poller tolerates transient ones, and the
    per-item forwarder records them as failed outcomes.
    """

    pass


class ComplianceHTTPError(ComplianceError):
    """HTTP request failed with a 4xx or 5xx status (or never got a response)."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        """Initialize HTTP error with status code and URL.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (0 when no response was received)
            url: URL that failed
        """
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def is_transient(self) -> bool:
        """Throttling, server errors and connection failures are worth retrying."""
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class ComplianceTimeoutError(ComplianceError):
    """HTTP request did not complete within the configured timeout."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url

    @property
    def is_transient(self) -> bool:
        return True


class ComplianceResponseError(ComplianceError):
    """Response could not be parsed or lacked a required field."""

    pass


class AuthenticationFailed(ComplianceError):
    """Token acquisition failed or the platform rejected the access token.

    Always fatal for the run.
    """

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.detail = detail


def is_transient(error: Exception) -> bool:
    """Return True when ``error`` is a platform error worth retrying."""
    return bool(getattr(error, "is_transient", False))
