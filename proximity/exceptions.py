"""
Domain exceptions for the proximity engine.

Input errors and explicit strict-mode failures are raised. An unreadable
profile store is raised too, since the privacy flag lives there; other
infrastructure failures are represented as values and handled locally.
"""

from typing import Any, Dict, Optional


class ProximityError(ValueError):
    """Base class for user-correctable errors."""

    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidCoordinateError(ProximityError):
    """Coordinates are missing, non-finite or outside WGS84 ranges."""


class UnsupportedModeError(ProximityError):
    """Travel mode is not supported by the requested operation."""


class RoutingUnavailableError(ProximityError):
    """Every routing tier failed and the caller asked for strict mode."""

    status_code = 502


class RateLimitExceededError(ProximityError):
    """The caller exhausted its request budget for the current window."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", remaining: int = 0):
        super().__init__(message, {"remaining": remaining})
        self.remaining = remaining


class StoreUnavailableError(ProximityError):
    """A store needed to honor the caller's privacy setting could not be read."""

    status_code = 503
