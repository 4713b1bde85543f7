"""Channel profile and watch history read models."""

from typing import Optional
from uuid import UUID

import structlog

from vidtube.database import get_pool
from vidtube.exceptions import NotFoundError, ValidationError
from vidtube.models.channel import ChannelProfile, VideoOwner, WatchHistoryItem

logger = structlog.get_logger(__name__)


class ChannelService:
    """Builds read models by joining users, subscriptions and videos."""

    async def get_channel_profile(
        self, username: Optional[str], viewer_id: Optional[UUID] = None
    ) -> ChannelProfile:
        """Load a channel with its subscription counts.

        Args:
            username: Channel username, matched case-insensitively
            viewer_id: Caller's id, or None for an anonymous viewer

        Returns:
            ChannelProfile; ``is_subscribed`` is False for anonymous viewers

        Raises:
            ValidationError: If the username is blank
            NotFoundError: If no user has that username
        """
        if username is None or not username.strip():
            raise ValidationError("Username is missing")

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    u.id, u.full_name, u.username, u.email, u.avatar, u.cover_image,
                    (SELECT COUNT(*) FROM subscriptions s WHERE s.channel = u.id)
                        AS subscribers_count,
                    (SELECT COUNT(*) FROM subscriptions s WHERE s.subscriber = u.id)
                        AS channels_subscribed_to_count,
                    EXISTS (
                        SELECT 1 FROM subscriptions s
                        WHERE s.channel = u.id AND s.subscriber = $2::uuid
                    ) AS is_subscribed
                FROM users u
                WHERE u.username = LOWER($1)
                """,
                username.strip(),
                viewer_id,
            )

        if row is None:
            raise NotFoundError("Channel does not exist")

        return ChannelProfile(
            id=row["id"],
            full_name=row["full_name"],
            username=row["username"],
            email=row["email"],
            avatar=row["avatar"],
            cover_image=row["cover_image"] or "",
            subscribers_count=row["subscribers_count"],
            channels_subscribed_to_count=row["channels_subscribed_to_count"],
            is_subscribed=bool(row["is_subscribed"]),
        )

    async def get_watch_history(self, user_id: UUID) -> list[WatchHistoryItem]:
        """Resolve the user's watch history to videos with their owners.

        Order follows the stored history (most recent first). Entries whose
        video no longer exists are skipped. An empty history is an empty
        list, not an error.

        Raises:
            NotFoundError: If the user does not exist
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            exists = await conn.fetchval("SELECT 1 FROM users WHERE id = $1", user_id)
            if not exists:
                raise NotFoundError("User does not exist")

            rows = await conn.fetch(
                """
                SELECT
                    v.id, v.title, v.description, v.video_file, v.thumbnail,
                    v.duration, v.views, v.is_published, v.created_at,
                    o.id AS owner_id,
                    o.full_name AS owner_full_name,
                    o.username AS owner_username,
                    o.avatar AS owner_avatar
                FROM users u
                CROSS JOIN LATERAL unnest(u.watch_history) WITH ORDINALITY AS h(video_id, position)
                JOIN videos v ON v.id = h.video_id
                LEFT JOIN users o ON o.id = v.owner
                WHERE u.id = $1
                ORDER BY h.position
                """,
                user_id,
            )

        history = [
            WatchHistoryItem(
                id=row["id"],
                title=row["title"],
                description=row["description"],
                video_file=row["video_file"],
                thumbnail=row["thumbnail"],
                duration=row["duration"],
                views=row["views"],
                is_published=row["is_published"],
                created_at=row["created_at"],
                owner=(
                    VideoOwner(
                        id=row["owner_id"],
                        full_name=row["owner_full_name"],
                        username=row["owner_username"],
                        avatar=row["owner_avatar"],
                    )
                    if row["owner_id"] is not None
                    else None
                ),
            )
            for row in rows
        ]

        logger.debug("watch_history_loaded", user_id=str(user_id), count=len(history))
        return history
