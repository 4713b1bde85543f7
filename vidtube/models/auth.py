"""Auth and account request/response models."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from vidtube.models.user import User


class LoginRequest(BaseModel):
    """Login credentials.

    At least one of ``email`` or ``username`` must be given; that check
    lives in the session service so that it reports the same error as the
    other account validations.
    """

    email: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(..., max_length=72)


class TokenPair(BaseModel):
    """Access and refresh token pair.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived JWT for obtaining a new pair
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class LoginResponse(TokenPair):
    """Successful login: the token pair plus the authenticated user."""

    user: User


class RefreshRequest(BaseModel):
    """Refresh token supplied in the body when no cookie is present."""

    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(..., max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure the new password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class UpdateAccountRequest(BaseModel):
    """Account detail update; both fields are required by the service."""

    full_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
