"""User persistence: all SQL against the users table."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from vidtube.database import get_pool
from vidtube.exceptions import ConflictError
from vidtube.models.user import User
from vidtube.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id, username, email, full_name, avatar, cover_image, watch_history, "
    "created_at, updated_at"
)

# Columns that hold a media URL and may be replaced through replace_media
MEDIA_FIELDS = ("avatar", "cover_image")


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        full_name=row["full_name"],
        avatar=row["avatar"],
        cover_image=row["cover_image"] or "",
        watch_history=list(row["watch_history"] or []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD and refresh-token storage."""

    def __init__(self):
        self.auth_service = AuthService()

    async def find_existing(self, username: str, email: str) -> Optional[User]:
        """Find a user holding either the username or the email.

        Both are compared in their normalized (lowercase) form in a single
        query.
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE username = LOWER($1) OR email = LOWER($2)
                LIMIT 1
                """,
                username,
                email,
            )

        return _row_to_user(row) if row else None

    async def create_user(
        self,
        username: str,
        email: str,
        full_name: str,
        password: str,
        avatar: str,
        cover_image: str = "",
    ) -> UUID:
        """Insert a new user with a hashed password.

        Args:
            username: Username, stored lowercase
            email: Email, stored lowercase
            full_name: Display name
            password: Plain-text password (will be hashed)
            avatar: Avatar URL
            cover_image: Cover image URL, or empty string

        Returns:
            The new user's id

        Raises:
            ConflictError: If the username or email is already taken
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)
        password_hash = self.auth_service.hash_password(password)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (id, username, email, full_name, password_hash,
                                       avatar, cover_image, created_at, updated_at)
                    VALUES ($1, LOWER($2), LOWER($3), $4, $5, $6, $7, $8, $9)
                    """,
                    user_id,
                    username,
                    email,
                    full_name,
                    password_hash,
                    avatar,
                    cover_image,
                    now,
                    now,
                )
        except asyncpg.UniqueViolationError:
            logger.warning("user_create_conflict", username=username.lower())
            raise ConflictError("User with email or username already exists")

        logger.info("user_created", user_id=str(user_id), username=username.lower())
        return user_id

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by UUID, or None if not found."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        return _row_to_user(row) if row else None

    async def get_with_password(
        self,
        email: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Optional[tuple[User, str]]:
        """Look up a user by email or username for login.

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE ($1::text IS NOT NULL AND email = LOWER($1))
                   OR ($2::text IS NOT NULL AND username = LOWER($2))
                LIMIT 1
                """,
                email,
                username,
            )

        if row is None:
            return None

        return _row_to_user(row), row["password_hash"]

    async def get_password_hash(self, user_id: UUID) -> Optional[str]:
        """Return the stored password hash, or None if the user does not exist."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT password_hash FROM users WHERE id = $1",
                user_id,
            )

    async def set_refresh_token(self, user_id: UUID, token_hash: str) -> bool:
        """Store a refresh token digest, overwriting any previous one.

        Returns:
            True if the user exists and was updated
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE users
                SET refresh_token_hash = $1, updated_at = $2
                WHERE id = $3
                """,
                token_hash,
                datetime.now(timezone.utc),
                user_id,
            )

        return result == "UPDATE 1"

    async def clear_refresh_token(self, user_id: UUID) -> None:
        """Remove the stored refresh token. Safe to call repeatedly."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE users
                SET refresh_token_hash = NULL, updated_at = $1
                WHERE id = $2
                """,
                datetime.now(timezone.utc),
                user_id,
            )

        logger.info("refresh_token_cleared", user_id=str(user_id))

    async def rotate_refresh_token(
        self, user_id: UUID, old_hash: str, new_hash: str
    ) -> bool:
        """Swap the stored refresh token only if it still equals ``old_hash``.

        Check and write happen in one conditional UPDATE, so of two
        concurrent rotations presenting the same token exactly one wins.

        Returns:
            True if the swap happened, False if the stored value differed
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE users
                SET refresh_token_hash = $1, updated_at = $2
                WHERE id = $3 AND refresh_token_hash = $4
                RETURNING id
                """,
                new_hash,
                datetime.now(timezone.utc),
                user_id,
                old_hash,
            )

        return row is not None

    async def update_password(self, user_id: UUID, password: str) -> bool:
        """Store a new password hash and revoke the stored refresh token.

        Returns:
            True if the user exists and was updated
        """
        password_hash = self.auth_service.hash_password(password)
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE users
                SET password_hash = $1, refresh_token_hash = NULL, updated_at = $2
                WHERE id = $3
                """,
                password_hash,
                datetime.now(timezone.utc),
                user_id,
            )

        updated = result == "UPDATE 1"
        if updated:
            logger.info("password_updated", user_id=str(user_id))
        return updated

    async def update_account(
        self, user_id: UUID, full_name: str, email: str
    ) -> Optional[User]:
        """Set full name and email.

        Returns:
            Updated User model, or None if user not found

        Raises:
            ConflictError: If the email belongs to another user
        """
        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE users
                    SET full_name = $1, email = LOWER($2), updated_at = $3
                    WHERE id = $4
                    RETURNING {USER_COLUMNS}
                    """,
                    full_name,
                    email,
                    datetime.now(timezone.utc),
                    user_id,
                )
        except asyncpg.UniqueViolationError:
            logger.warning("account_update_conflict", user_id=str(user_id))
            raise ConflictError("Email is already in use")

        if row is None:
            return None

        logger.info("account_updated", user_id=str(user_id))
        return _row_to_user(row)

    async def replace_media(
        self, user_id: UUID, field: str, url: str
    ) -> Optional[tuple[User, str]]:
        """Point a media field at a new URL.

        The previous value is read under a row lock in the same statement,
        so the caller learns exactly which object it replaced.

        Args:
            user_id: UUID of the user to update
            field: One of ``MEDIA_FIELDS``
            url: New media URL

        Returns:
            Tuple of (updated User, previous URL) or None if user not found
        """
        if field not in MEDIA_FIELDS:
            raise ValueError(f"Not a media field: {field}")

        returning = ", ".join(f"u.{c.strip()}" for c in USER_COLUMNS.split(","))
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users AS u
                SET {field} = $1, updated_at = $2
                FROM (SELECT id, {field} FROM users WHERE id = $3 FOR UPDATE) AS prev
                WHERE u.id = prev.id
                RETURNING {returning}, prev.{field} AS previous_url
                """,
                url,
                datetime.now(timezone.utc),
                user_id,
            )

        if row is None:
            return None

        logger.info("user_media_replaced", user_id=str(user_id), field=field)
        return _row_to_user(row), row["previous_url"] or ""

    async def record_watch(self, user_id: UUID, video_id: UUID) -> bool:
        """Move a video to the front of the user's watch history.

        Any earlier occurrence is removed, so history stays most-recent-first
        without duplicates.

        Returns:
            False if the user or the video does not exist
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE users
                SET watch_history = array_prepend($1::uuid, array_remove(watch_history, $1::uuid)),
                    updated_at = $2
                WHERE id = $3 AND EXISTS (SELECT 1 FROM videos WHERE id = $1)
                RETURNING id
                """,
                video_id,
                datetime.now(timezone.utc),
                user_id,
            )

        return row is not None
