"""Exceptions raised by the locator.

Probing failures are never raised; they become failed DetectionResults.
These exceptions cover programming errors and malformed input only.
"""

from typing import Optional

from .models import ErrorKind


class LocatorError(Exception):
    """Base class for locator errors."""

    kind: Optional[ErrorKind] = None


class NotDetectedError(LocatorError):
    """Raised when the CLI is used before a successful detection."""

    def __init__(self, message: str = "Claude not detected. Please run detection first."):
        super().__init__(message)


class InvalidConfigurationError(LocatorError, ValueError):
    """Raised for malformed paths, overrides or working directories."""

    kind = ErrorKind.INVALID_CONFIGURATION


class UnsupportedPlatformError(LocatorError):
    """Raised when no detector exists for the running host."""
