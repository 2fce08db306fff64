"""
Typed error taxonomy for the photo API.

Every domain error carries a human readable message, a stable error code and
optional details. The HTTP status is attached to the class so the global
exception handler in main.py can render it without a lookup table.
"""
from typing import Any, Dict, Optional


# Error codes (wire contract, do not rename)
EMPTY_FILE = "EMPTY_FILE"
INVALID_MAGIC_BYTES = "INVALID_MAGIC_BYTES"
INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
INVALID_EXTENSION = "INVALID_EXTENSION"
INVALID_INPUT = "INVALID_INPUT"
FILE_TOO_LARGE = "FILE_TOO_LARGE"
STORAGE_EXCEEDED = "STORAGE_EXCEEDED"
PHOTO_COUNT_EXCEEDED = "PHOTO_COUNT_EXCEEDED"
NOT_FOUND = "NOT_FOUND"
FORBIDDEN = "FORBIDDEN"
PATH_TRAVERSAL = "PATH_TRAVERSAL"
STORAGE_IO_ERROR = "STORAGE_IO_ERROR"
IMAGE_PROCESSING_ERROR = "IMAGE_PROCESSING_ERROR"
CONFLICT = "CONFLICT"

GENERIC_STORAGE_MESSAGE = "Failed to store file"


class PhotoApiError(Exception):
    """
    Base exception for all photo API errors.

    Callers must explicitly provide a message. Subclasses supply a default
    error code and HTTP status.
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        *,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def is_server_fault(self) -> bool:
        return self.status_code >= 500


class ValidationError(PhotoApiError):
    """Raised when uploaded content or request input is rejected."""

    status_code = 400
    default_code = INVALID_INPUT


class QuotaExceededError(PhotoApiError):
    """Base for tier limit violations."""

    status_code = 403
    default_code = STORAGE_EXCEEDED


class FileTooLargeError(QuotaExceededError):
    status_code = 413
    default_code = FILE_TOO_LARGE


class StorageExceededError(QuotaExceededError):
    default_code = STORAGE_EXCEEDED


class PhotoCountExceededError(QuotaExceededError):
    default_code = PHOTO_COUNT_EXCEEDED


class NotFoundError(PhotoApiError):
    status_code = 404
    default_code = NOT_FOUND


class ForbiddenError(PhotoApiError):
    status_code = 403
    default_code = FORBIDDEN


class ConflictError(PhotoApiError):
    status_code = 409
    default_code = CONFLICT


class PathTraversalError(PhotoApiError):
    """Raised when a relative storage path escapes the storage root."""

    status_code = 400
    default_code = PATH_TRAVERSAL


class StorageIOError(PhotoApiError):
    """Disk write/read/delete failure or timeout. Details are logged, never returned."""

    status_code = 500
    default_code = STORAGE_IO_ERROR

    def __init__(self, *, message: str = GENERIC_STORAGE_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message=message, **kwargs)


class ImageProcessingError(PhotoApiError):
    """Rendition generation failure (decoder or encoder fault)."""

    status_code = 500
    default_code = IMAGE_PROCESSING_ERROR

    def __init__(self, *, message: str = GENERIC_STORAGE_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message=message, **kwargs)
