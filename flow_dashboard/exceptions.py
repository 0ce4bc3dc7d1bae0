"""
Custom exception classes with context for Flow Dashboard.

All exceptions inherit from FlowDashboardError and support attaching
contextual information for logging. Network and API failures surface to
the user with a retry affordance; local storage integrity failures are
handled inside the store and never reach callers.
"""

from __future__ import annotations


class FlowDashboardError(Exception):
    """
    Base exception for Flow Dashboard.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary with additional context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, object] | None = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with contextual information
                    (operation name, endpoint, repository, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NetworkError(FlowDashboardError):
    """
    Transport-level failure (DNS, timeout, connection reset).

    Never retried automatically.

    Example:
        raise NetworkError(
            "Network error calling GitHub API",
            context={"endpoint": "/user", "error_type": "ConnectTimeout"}
        )
    """


class ApiError(FlowDashboardError):
    """
    The GitHub API rejected the request.

    Raised for every non-2xx response. The message is the API's own
    ``message`` field when the error body parses, else ``API Error: <status>``.
    """

    def __init__(
        self,
        status: int,
        message: str,
        context: dict[str, object] | None = None,
    ):
        super().__init__(message, context)
        self.status = status

    @property
    def is_auth_error(self) -> bool:
        """True when the status invalidates the credential (401/403)."""
        return self.status in (401, 403)


class StorageError(FlowDashboardError):
    """Encrypted local store could not complete a write."""


class StorageUnavailableError(StorageError):
    """Crypto provider or key-value substrate is missing or not functional."""


class CorruptedDataError(StorageError):
    """
    Stored envelope is malformed.

    Raised and handled inside SecureStorage.get: the entry is deleted and
    the read returns None.
    """


class DecryptionFailedError(StorageError):
    """
    Stored envelope failed authenticated decryption.

    Wrong device fingerprint, tampering or truncation all land here. Handled
    inside SecureStorage.get like CorruptedDataError.
    """


class InvalidCredentialError(FlowDashboardError):
    """
    Token validation failed.

    Example:
        raise InvalidCredentialError(
            "Bad credentials",
            context={"status": 401}
        )
    """

    def __init__(self, reason: str, context: dict[str, object] | None = None):
        super().__init__(reason, context)
        self.reason = reason


class CredentialRequiredError(FlowDashboardError):
    """Operation needs a validated token but none is set."""


class PerResourceError(FlowDashboardError):
    """
    A single repository's enrichment or status fetch failed.

    Recorded on that repository only; never aborts a batch or fan-out.
    """

    def __init__(
        self,
        repository_id: int,
        message: str,
        context: dict[str, object] | None = None,
    ):
        super().__init__(message, context)
        self.repository_id = repository_id


class ConfigurationError(FlowDashboardError):
    """
    Configuration error.

    Raised when configuration loading, validation, or parsing fails.
    """


class ValidationError(FlowDashboardError):
    """
    Input validation failed.

    Example:
        raise ValidationError(
            "Invalid refresh interval",
            context={
                "field": "refresh_interval",
                "value": 45,
                "allowed_values": [10, 30, 60, 120, 300, 600, 1800, 3600]
            }
        )
    """
