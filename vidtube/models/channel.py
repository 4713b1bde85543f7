"""Read models built by joining users, subscriptions and videos."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ChannelProfile(BaseModel):
    """Public view of a channel.

    Attributes:
        subscribers_count: Users subscribed to this channel
        channels_subscribed_to_count: Channels this user subscribes to
        is_subscribed: Whether the viewing user subscribes to this channel
    """

    id: UUID
    full_name: str
    username: str
    email: str
    avatar: str
    cover_image: str
    subscribers_count: int
    channels_subscribed_to_count: int
    is_subscribed: bool


class VideoOwner(BaseModel):
    """Reduced owner projection embedded in watch history entries."""

    id: UUID
    full_name: str
    username: str
    avatar: str


class WatchHistoryItem(BaseModel):
    """A watched video with its owner denormalized in."""

    id: UUID
    title: str
    description: str
    video_file: str
    thumbnail: str
    duration: float
    views: int
    is_published: bool
    created_at: datetime
    owner: Optional[VideoOwner] = None
