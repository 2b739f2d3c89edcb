"""Exceptions raised by the dashboard."""
from typing import Optional


class DashboardError(Exception):
    """Base class for dashboard errors."""


class ConfigurationError(DashboardError):
    """Invalid configuration, ABI descriptor or contract address.

    Fatal: raised at startup before any network call is made.
    """


class NetworkError(DashboardError):
    """Transport failure or non-success response from the node."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        """Initialize the error.

        Args:
            message: Human readable description
            cause: The underlying transport exception, if any
        """
        super().__init__(message)
        self.cause = cause


class ParseError(DashboardError):
    """Malformed block or block-number payload returned by the node."""


class PollerConflictError(DashboardError):
    """Another poller is already writing to the same refresh sink."""
