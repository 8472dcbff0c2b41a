"""
Error taxonomy for the upload pipeline.

Transport and resolution failures terminate a session and reach subscribers
as a SessionError; the exceptions here are what the collaborators raise.
"""
from typing import Optional


class PodUploadError(Exception):
    """Base class for all podupload errors."""


class ConfigurationError(PodUploadError):
    """Raised when configuration values are missing or invalid."""


class TransportError(PodUploadError):
    """Raised by a transport backend when a storage call fails."""


class NetworkError(TransportError):
    """Connection failure, DNS failure or transport-level timeout."""


class ServerError(TransportError):
    """Backend answered with an error status or an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResolutionError(PodUploadError):
    """Public URL still unavailable after every resolve attempt."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        detail = f"; last error: {last_error}" if last_error else ""
        super().__init__(f"Public URL not available after {attempts} attempt(s){detail}")
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceeded(PodUploadError):
    """The upload deadline elapsed before the transfer settled."""

    def __init__(self, timeout: float):
        super().__init__(f"Upload did not finish within {timeout:g}s")
        self.timeout = timeout


class OperationCancelled(PodUploadError):
    """The run token was cancelled while an operation was pending."""


class BusyError(PodUploadError):
    """start() called while another session is still active."""


class InvalidStateError(PodUploadError):
    """Operation not allowed in the session's current state."""
