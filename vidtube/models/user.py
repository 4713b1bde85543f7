"""User models."""

from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class User(BaseModel):
    """A registered account, without credentials.

    The password hash and refresh token digest never leave the user store
    inside this model.
    """

    id: UUID
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    watch_history: List[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
