"""
Exception hierarchy for viewtracker.

Provider errors are split into retryable and terminal families so the
retry wrapper and the updater can route them without string matching.
"""


class ViewTrackerError(Exception):
    """Base class for all viewtracker errors."""
    pass


class ConfigError(ViewTrackerError):
    """Raised when configuration values are missing or invalid."""
    pass


class NotFoundError(ViewTrackerError):
    """Raised when a tracked video does not exist."""
    pass


class StaleWriteError(ViewTrackerError):
    """Raised when an aggregate update would move views backwards."""
    pass


class Cancelled(ViewTrackerError):
    """Raised when the caller's stop signal interrupts work."""
    pass


class ProviderError(ViewTrackerError):
    """Base class for metrics provider failures."""
    pass


class RetryableProviderError(ProviderError):
    """Failure that may succeed on a later attempt."""
    pass


class TransportError(RetryableProviderError):
    """Network failure talking to the provider."""
    pass


class BadResponseError(RetryableProviderError):
    """Non-OK status or undecodable payload from the provider."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class TerminalProviderError(ProviderError):
    """Failure that must not be retried."""
    pass


class BadRequestError(TerminalProviderError):
    """The request itself is malformed (bad URL, 400)."""
    pass


class InvalidTokenError(TerminalProviderError):
    """The provider credential is missing or rejected."""
    pass


class ValidationError(ViewTrackerError):
    """Raised when a tracking request is malformed."""

    def __init__(self, errors):
        super().__init__("; ".join(errors))
        self.errors = list(errors)
