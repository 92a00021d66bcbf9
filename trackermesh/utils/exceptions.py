"""Exception hierarchy for trackermesh.

Provides the exception hierarchy used throughout the session layer so callers
can tell configuration mistakes apart from transport and protocol failures.
"""

from __future__ import annotations

from typing import Any


class TrackerMeshError(Exception):
    """Base exception for all trackermesh errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize trackermesh error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(TrackerMeshError):
    """Network-related errors."""


class TrackerError(NetworkError):
    """Tracker registration and communication errors."""


class TrackerAlreadyExistsError(TrackerError):
    """Raised when an announce URL is registered twice."""


class TrackerNotFoundError(TrackerError):
    """Raised when removing an announce URL that was never registered."""


class ProtocolError(TrackerMeshError):
    """Protocol errors."""


class MessageError(ProtocolError):
    """Message parsing/serialization errors."""


class FragmentError(MessageError):
    """Malformed or inconsistent message fragments."""


class ValidationError(TrackerMeshError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""
