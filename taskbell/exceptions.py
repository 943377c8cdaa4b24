"""
Exceptions for the TaskBell notification client.

The first group mirrors the notification error taxonomy surfaced to the
UI layer; the second group is raised by the notification registry HTTP
client and translated by its callers.
"""

from typing import Optional


class TaskBellError(Exception):
    """Base exception for notification client errors."""

    pass


# ============================================================================
# Notification Taxonomy
# ============================================================================


class PermissionDenied(TaskBellError):
    """
    The user declined (or previously blocked) the notification prompt.

    Terminal until the user changes the permission outside the client;
    never retried automatically.
    """

    pass


class SubscriptionFailed(TaskBellError):
    """Registry or platform subscription call failed after retries."""

    pass


class TransportError(TaskBellError):
    """Realtime connection failed to establish or dropped."""

    pass


class PersistenceCorrupt(TaskBellError):
    """Stored notification history could not be parsed."""

    pass


class UnsupportedPlatformError(TaskBellError):
    """Push notifications are not available on this platform."""

    pass


class PlatformError(TaskBellError):
    """
    Raised by push platform adapters.

    Attributes:
        transient: Whether retrying the same call may succeed
    """

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class ChannelAuthorizationError(TransportError):
    """Raised when the server refuses access to a private channel."""

    pass


# ============================================================================
# Registry Client Errors
# ============================================================================


class ApiError(TaskBellError):
    """Base exception for notification registry API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RegistryConnectionError(ApiError):
    """Raised when the connection to the registry fails or times out."""

    pass


class AuthenticationError(ApiError):
    """Raised when the bearer token is missing, invalid or expired."""

    pass


def is_transient(exc: BaseException) -> bool:
    """
    Decide whether a failed subscribe step is worth retrying.

    Connection problems, server-side (5xx) errors and platform errors
    flagged as transient are retried; authentication problems, client
    errors and unsupported platforms are not.
    """
    if isinstance(exc, RegistryConnectionError):
        return True
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, ApiError):
        return exc.status_code is None or exc.status_code >= 500
    if isinstance(exc, PlatformError):
        return exc.transient
    return False
