"""Error taxonomy shared by services and API handlers.

Every failure that reaches a client is one of these kinds. The exception
handlers registered in ``marketplace.main`` render them as
``{"success": false, "message": ...}`` with the matching status code.
"""

from fastapi import status


class MarketplaceError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class Unauthenticated(MarketplaceError):
    """Missing, malformed, expired or invalid credentials, or inactive account."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authorized to access this route"


class Forbidden(MarketplaceError):
    """Authenticated but lacking the required role or ownership."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to perform this action"


class NotFound(MarketplaceError):
    """Referenced resource does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InternalError(MarketplaceError):
    """Store or infrastructure failure."""


class MediaUploadError(InternalError):
    """The media service did not accept an uploaded image."""

    default_message = "Error uploading image"


class InvalidToken(Unauthenticated):
    """An access token failed signature, format or expiry checks."""

    default_message = "Invalid or expired access token"


class InvalidOrExpiredToken(Unauthenticated):
    """A refresh token is unknown, expired, rotated out or revoked."""

    default_message = "Invalid or expired refresh token"
