"""Domain errors and response helpers.

Each error carries a machine-readable code and the HTTP status the API layer
renders it with, so services can raise them without knowing about FastAPI.
"""

from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class ValidationError(AppError):
    """Input failed a business rule; the write must not reach persistence."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST)


class ForbiddenError(AppError):
    """Caller is not allowed to perform the operation."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, "forbidden", status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    """Referenced record does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    """A record with the same identity already exists."""

    def __init__(self, message: str = "Record already exists"):
        super().__init__(message, "conflict", status.HTTP_409_CONFLICT)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


__all__ = [
    "AppError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "error_response",
]
