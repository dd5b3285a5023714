"""
Error taxonomy for catalog operations.

Each error carries the HTTP status it maps to and a message that is safe to show
to the caller. Upload and persistence failures always use a generic message;
the underlying cause is logged where it happens.
"""
from typing import Optional


class CatalogError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CatalogError):
    """Caller-fixable input problem; raised before any side effect."""
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(CatalogError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(CatalogError):
    """Acting principal is not the asset owner."""
    status_code = 403
    default_message = "Forbidden"


class NotFound(CatalogError):
    status_code = 404
    default_message = "Video not found"


class UploadFailure(CatalogError):
    """A blob store step failed; compensation has already been attempted."""
    status_code = 502
    default_message = "Failed to upload media"


class PersistenceFailure(CatalogError):
    """Database write failed after uploads succeeded; compensation has been attempted."""
    status_code = 500
    default_message = "Failed to save video"


class AmbiguousState(PersistenceFailure):
    """Write looked successful but the row cannot be read back. Never auto-compensated."""
    default_message = "Video state could not be confirmed"
