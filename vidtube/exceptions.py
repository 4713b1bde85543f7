"""Error taxonomy surfaced to API callers.

Services raise only these. Each carries the HTTP status code the API layer
responds with and a user-safe message.
"""

from fastapi import status


class ApiError(Exception):
    """Base class for failures reported to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApiError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation error"


class ConflictError(ApiError):
    """A unique field (username, email) is already taken."""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class UnauthorizedError(ApiError):
    """Bad credentials or an invalid, expired, or reused token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class UploadError(ApiError):
    """The media store did not return a URL for an upload."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Upload failed"


class InternalError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal error"
