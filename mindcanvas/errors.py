"""Error types raised by MindCanvas."""

from typing import Optional


class MindCanvasError(Exception):
    """Base class for all MindCanvas errors."""


class ValidationError(MindCanvasError, ValueError):
    """Input rejected by local validation or by the remote service (400/422)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthenticationError(MindCanvasError):
    """Missing, expired or rejected credentials (401)."""


class PermissionDeniedError(MindCanvasError):
    """The user may not access the requested map (403)."""


class NotFoundError(MindCanvasError):
    """The requested map or resource does not exist (404)."""


class NetworkError(MindCanvasError):
    """Transport failure or server error (5xx)."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url
