"""Shared response models."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body returned for every failed request.

    Attributes:
        error: What happened (the error category)
        detail: Why, in user-safe wording
        correlation_id: Request tracking ID for debugging
    """

    error: str
    detail: str
    correlation_id: str
