"""Models package exports."""

from vidtube.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenPair,
    UpdateAccountRequest,
)
from vidtube.models.channel import ChannelProfile, VideoOwner, WatchHistoryItem
from vidtube.models.response import ErrorResponse
from vidtube.models.user import User

__all__ = [
    "ChangePasswordRequest",
    "ChannelProfile",
    "ErrorResponse",
    "LoginRequest",
    "LoginResponse",
    "RefreshRequest",
    "TokenPair",
    "UpdateAccountRequest",
    "User",
    "VideoOwner",
    "WatchHistoryItem",
]
