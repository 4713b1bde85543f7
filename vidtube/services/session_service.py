"""Account session lifecycle: registration, login, logout, token rotation.

Every operation that acts on an authenticated caller takes the caller's
``user_id`` explicitly. Failures leave this module only as ``ApiError``
subclasses.
"""

from typing import Optional
from uuid import UUID

import structlog

from vidtube.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    UploadError,
    ValidationError,
)
from vidtube.models.user import User
from vidtube.services.auth_service import (
    MAX_PASSWORD_BYTES,
    AuthService,
    InvalidTokenError,
)
from vidtube.services.media_service import MediaService
from vidtube.services.user_service import UserService

logger = structlog.get_logger(__name__)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class SessionService:
    """Orchestrates the credential verifier, token issuer and user store."""

    def __init__(
        self,
        user_service: Optional[UserService] = None,
        auth_service: Optional[AuthService] = None,
        media_service: Optional[MediaService] = None,
    ):
        self.user_service = user_service or UserService()
        self.auth_service = auth_service or AuthService()
        self.media_service = media_service or MediaService()

    async def register(
        self,
        full_name: Optional[str],
        email: Optional[str],
        username: Optional[str],
        password: Optional[str],
        avatar_path: Optional[str],
        cover_image_path: Optional[str] = None,
    ) -> User:
        """Create an account.

        The avatar is required and its upload failure is fatal; a failed
        cover image upload is stored as an empty string.

        Raises:
            ValidationError: A required field or the avatar is missing, or
                the password is longer than bcrypt accepts
            ConflictError: Username or email already taken
            UploadError: The avatar upload produced no URL
            InternalError: The created record could not be read back
        """
        if any(_is_blank(f) for f in (full_name, email, username, password)):
            raise ValidationError("All fields are required")
        self._check_password_length(password)

        full_name, email, username = full_name.strip(), email.strip(), username.strip()

        existing = await self.user_service.find_existing(username, email)
        if existing is not None:
            logger.info("registration_conflict", username=username.lower())
            raise ConflictError("User with email or username already exists")

        if _is_blank(avatar_path):
            raise ValidationError("Avatar file is required")

        avatar_url = await self.media_service.upload(avatar_path)
        if not avatar_url:
            raise UploadError("Avatar upload failed")

        cover_image_url = ""
        if cover_image_path:
            cover_image_url = await self.media_service.upload(cover_image_path) or ""
            if not cover_image_url:
                logger.warning("cover_image_upload_skipped", username=username.lower())

        try:
            user_id = await self.user_service.create_user(
                username=username,
                email=email,
                full_name=full_name,
                password=password,
                avatar=avatar_url,
                cover_image=cover_image_url,
            )
        except Exception:
            await self._discard_uploads(avatar_url, cover_image_url)
            raise

        created = await self.user_service.get_by_id(user_id)
        if created is None:
            logger.error("registered_user_missing", user_id=str(user_id))
            raise InternalError("Something went wrong while registering the user")

        logger.info("user_registered", user_id=str(user_id), username=created.username)
        return created

    async def login(
        self,
        password: Optional[str],
        email: Optional[str] = None,
        username: Optional[str] = None,
    ) -> tuple[User, str, str]:
        """Authenticate and start a session.

        The new refresh token overwrites whatever was stored before, so a
        login ends any earlier session's ability to refresh.

        Returns:
            Tuple of (user, access_token, refresh_token)

        Raises:
            ValidationError: Neither email nor username given, or the
                password is missing or too long
            NotFoundError: No user matches
            UnauthorizedError: Wrong password
        """
        email = None if _is_blank(email) else email.strip()
        username = None if _is_blank(username) else username.strip()

        if email is None and username is None:
            raise ValidationError("Username or email is required")
        if _is_blank(password):
            raise ValidationError("Password is required")
        self._check_password_length(password)

        result = await self.user_service.get_with_password(email=email, username=username)
        if result is None:
            raise NotFoundError("User does not exist")

        user, password_hash = result
        if not self.auth_service.verify_password(password, password_hash):
            logger.info("login_rejected", user_id=str(user.id))
            raise UnauthorizedError("Invalid user credentials")

        access_token, refresh_token = self._issue_pair(user)
        stored = await self.user_service.set_refresh_token(
            user.id, self.auth_service.hash_token(refresh_token)
        )
        if not stored:
            raise InternalError("Something went wrong while generating tokens")

        logger.info("user_logged_in", user_id=str(user.id), username=user.username)
        return user, access_token, refresh_token

    async def logout(self, user_id: UUID) -> None:
        """Revoke the stored refresh token. Logging out twice is fine."""
        await self.user_service.clear_refresh_token(user_id)
        logger.info("user_logged_out", user_id=str(user_id))

    async def refresh(self, incoming_refresh_token: Optional[str]) -> tuple[str, str]:
        """Exchange a refresh token for a new pair, rotating the stored one.

        Returns:
            Tuple of (access_token, refresh_token)

        Raises:
            UnauthorizedError: Token missing, invalid, expired, or already used
            NotFoundError: The token's user no longer exists
        """
        if _is_blank(incoming_refresh_token):
            raise UnauthorizedError("Unauthorized request")

        try:
            user_id = self.auth_service.validate_refresh_token(incoming_refresh_token)
        except InvalidTokenError as e:
            raise UnauthorizedError(str(e))

        user = await self.user_service.get_by_id(user_id)
        if user is None:
            raise NotFoundError("Invalid refresh token: user not found")

        access_token, refresh_token = self._issue_pair(user)
        rotated = await self.user_service.rotate_refresh_token(
            user.id,
            old_hash=self.auth_service.hash_token(incoming_refresh_token),
            new_hash=self.auth_service.hash_token(refresh_token),
        )
        if not rotated:
            logger.warning("refresh_token_reuse_detected", user_id=str(user.id))
            raise UnauthorizedError("Refresh token is expired or used")

        logger.info("refresh_token_rotated", user_id=str(user.id))
        return access_token, refresh_token

    async def change_password(
        self, user_id: UUID, old_password: Optional[str], new_password: Optional[str]
    ) -> None:
        """Replace the password after verifying the old one.

        The stored refresh token is revoked in the same write, so sessions
        started with the old password cannot be refreshed.
        """
        if _is_blank(new_password):
            raise ValidationError("New password is required")
        self._check_password_length(new_password, label="New password")

        password_hash = await self.user_service.get_password_hash(user_id)
        if password_hash is None:
            raise NotFoundError("User does not exist")

        if not self.auth_service.verify_password(old_password or "", password_hash):
            raise UnauthorizedError("Invalid old password")

        if not await self.user_service.update_password(user_id, new_password):
            raise NotFoundError("User does not exist")

        logger.info("password_changed", user_id=str(user_id))

    async def get_current_user(self, user_id: UUID) -> User:
        user = await self.user_service.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")
        return user

    async def update_account_details(
        self, user_id: UUID, full_name: Optional[str], email: Optional[str]
    ) -> User:
        """Set full name and email; both are required."""
        if _is_blank(full_name) or _is_blank(email):
            raise ValidationError("All fields are required")

        user = await self.user_service.update_account(
            user_id, full_name=full_name.strip(), email=email.strip()
        )
        if user is None:
            raise NotFoundError("User does not exist")
        return user

    async def update_avatar(self, user_id: UUID, avatar_path: Optional[str]) -> User:
        return await self._replace_media(user_id, "avatar", avatar_path, "Avatar")

    async def update_cover_image(
        self, user_id: UUID, cover_image_path: Optional[str]
    ) -> User:
        return await self._replace_media(
            user_id, "cover_image", cover_image_path, "Cover image"
        )

    async def record_watch(self, user_id: UUID, video_id: UUID) -> None:
        """Put a video at the front of the caller's watch history."""
        if await self.user_service.record_watch(user_id, video_id):
            return
        if await self.user_service.get_by_id(user_id) is None:
            raise NotFoundError("User does not exist")
        raise NotFoundError("Video does not exist")

    def _check_password_length(self, password: str, label: str = "Password") -> None:
        if not self.auth_service.password_fits(password):
            raise ValidationError(
                f"{label} must be at most {MAX_PASSWORD_BYTES} bytes long"
            )

    async def _replace_media(
        self, user_id: UUID, field: str, local_path: Optional[str], label: str
    ) -> User:
        """Upload a new file, persist its URL, then delete the replaced object.

        If persisting fails the fresh upload is deleted instead, so either
        way no remote object is left unreferenced.
        """
        if _is_blank(local_path):
            raise ValidationError(f"{label} file is missing")

        url = await self.media_service.upload(local_path)
        if not url:
            raise UploadError(f"Error while uploading {label.lower()}")

        try:
            result = await self.user_service.replace_media(user_id, field, url)
        except Exception:
            await self._discard_uploads(url)
            raise

        if result is None:
            await self._discard_uploads(url)
            raise NotFoundError("User does not exist")

        user, previous_url = result
        if previous_url and previous_url != url:
            await self.media_service.delete(previous_url)

        logger.info("user_media_updated", user_id=str(user_id), field=field)
        return user

    def _issue_pair(self, user: User) -> tuple[str, str]:
        access_token = self.auth_service.create_access_token(
            user_id=str(user.id),
            username=user.username,
            email=user.email,
        )
        refresh_token = self.auth_service.create_refresh_token(str(user.id))
        return access_token, refresh_token

    async def _discard_uploads(self, *urls: str) -> None:
        for url in urls:
            if url:
                await self.media_service.delete(url)
