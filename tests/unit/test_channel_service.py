"""Unit tests for ChannelService.

Mocks the asyncpg pool; the subscription counts and the history join are
done in SQL, so these tests assert on query shape and row mapping.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from vidtube.exceptions import NotFoundError, ValidationError
from vidtube.services.channel_service import ChannelService


@pytest.fixture
def patched_pool(mock_pool):
    pool, conn = mock_pool
    with patch("vidtube.services.channel_service.get_pool", new_callable=AsyncMock) as mock_get_pool:
        mock_get_pool.return_value = pool
        yield conn


def _channel_row(**overrides):
    row = {
        "id": uuid4(),
        "full_name": "Ada L",
        "username": "adal",
        "email": "ada@x.io",
        "avatar": "https://cdn/avatar.png",
        "cover_image": None,
        "subscribers_count": 2,
        "channels_subscribed_to_count": 1,
        "is_subscribed": False,
    }
    row.update(overrides)
    return row


def _history_row(title, owner_id=None, **overrides):
    row = {
        "id": uuid4(),
        "title": title,
        "description": f"{title} description",
        "video_file": f"https://cdn/{title}.mp4",
        "thumbnail": f"https://cdn/{title}.jpg",
        "duration": 12.5,
        "views": 3,
        "is_published": True,
        "created_at": datetime.now(timezone.utc),
        "owner_id": owner_id,
        "owner_full_name": "Grace H" if owner_id else None,
        "owner_username": "graceh" if owner_id else None,
        "owner_avatar": "https://cdn/grace.png" if owner_id else None,
    }
    row.update(overrides)
    return row


class TestChannelProfile:
    async def test_counts_and_subscription_flag(self, patched_pool):
        viewer_id = uuid4()
        patched_pool.fetchrow.return_value = _channel_row(is_subscribed=True)

        profile = await ChannelService().get_channel_profile("AdaL", viewer_id=viewer_id)

        assert profile.subscribers_count == 2
        assert profile.channels_subscribed_to_count == 1
        assert profile.is_subscribed is True
        assert profile.cover_image == ""
        sql, username, viewer = patched_pool.fetchrow.call_args[0]
        assert "u.username = LOWER($1)" in sql
        assert username == "AdaL"
        assert viewer == viewer_id

    async def test_anonymous_viewer_is_not_subscribed(self, patched_pool):
        patched_pool.fetchrow.return_value = _channel_row(is_subscribed=None)

        profile = await ChannelService().get_channel_profile("adal")

        assert profile.is_subscribed is False
        assert patched_pool.fetchrow.call_args[0][2] is None

    async def test_no_credentials_in_profile(self, patched_pool):
        patched_pool.fetchrow.return_value = _channel_row()

        profile = await ChannelService().get_channel_profile("adal")

        dumped = profile.model_dump()
        assert "password_hash" not in dumped
        assert "refresh_token_hash" not in dumped

    async def test_unknown_channel(self, patched_pool):
        patched_pool.fetchrow.return_value = None

        with pytest.raises(NotFoundError):
            await ChannelService().get_channel_profile("ghost")

    @pytest.mark.parametrize("username", [None, "", "   "])
    async def test_blank_username(self, patched_pool, username):
        with pytest.raises(ValidationError):
            await ChannelService().get_channel_profile(username)
        patched_pool.fetchrow.assert_not_awaited()


class TestWatchHistory:
    async def test_preserves_stored_order_with_owner(self, patched_pool):
        owner_id = uuid4()
        patched_pool.fetchval.return_value = 1
        patched_pool.fetch.return_value = [
            _history_row("second", owner_id=owner_id),
            _history_row("first", owner_id=owner_id),
        ]

        history = await ChannelService().get_watch_history(uuid4())

        assert [item.title for item in history] == ["second", "first"]
        assert history[0].owner.username == "graceh"
        assert history[0].owner.id == owner_id
        assert "ORDER BY h.position" in patched_pool.fetch.call_args[0][0]

    async def test_missing_owner_is_none(self, patched_pool):
        patched_pool.fetchval.return_value = 1
        patched_pool.fetch.return_value = [_history_row("orphan")]

        history = await ChannelService().get_watch_history(uuid4())

        assert history[0].owner is None

    async def test_empty_history(self, patched_pool):
        patched_pool.fetchval.return_value = 1
        patched_pool.fetch.return_value = []

        assert await ChannelService().get_watch_history(uuid4()) == []

    async def test_unknown_user(self, patched_pool):
        patched_pool.fetchval.return_value = None

        with pytest.raises(NotFoundError):
            await ChannelService().get_watch_history(uuid4())
        patched_pool.fetch.assert_not_awaited()
