"""Custom exceptions for Control D Sync."""

from typing import Any, Optional


class ControlDSyncError(Exception):
    """Base exception for Control D Sync."""

    pass


class ConfigurationError(ControlDSyncError):
    """Raised when configuration is invalid or missing."""

    pass


class RegistryError(ControlDSyncError):
    """Raised when the exposed-entity registry cannot apply a change."""

    pass


class ServiceCommunicationError(ControlDSyncError):
    """Raised by a switch when the remote service did not accept a toggle."""

    pass


# =============================================================================
# CLIENT ERRORS
# =============================================================================


class ClientError(ControlDSyncError):
    """Generic failure while talking to the Control D API."""

    pass


class AuthenticationError(ClientError):
    """The API rejected the token (HTTP 401/403)."""

    pass


class TokenPermissionError(AuthenticationError):
    """The token is valid but lacks access to the profiles endpoint."""

    pass


class APIError(ClientError):
    """The API answered with an error status."""

    def __init__(self, message: str, status_code: int, body: Optional[Any] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NetworkError(ClientError):
    """The request never got a response."""

    pass


class UnexpectedError(ClientError):
    """Anything else that went wrong during a request."""

    pass
