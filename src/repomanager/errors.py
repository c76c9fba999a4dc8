"""Error taxonomy for hosting API calls and interactive sessions."""

from __future__ import annotations


class HostingAPIError(RuntimeError):
    """Base exception for any failed hosting API call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthError(HostingAPIError):
    """Raised when the credential is missing or rejected."""


class NotFoundError(HostingAPIError):
    """Raised when a repository, user or permission record does not exist."""


class TransientAPIError(HostingAPIError):
    """Raised on network failures, rate limiting and server errors."""


class UserAbortedError(Exception):
    """Raised when the user declines to proceed at confirmation."""
