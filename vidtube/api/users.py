"""User account API endpoints."""

import asyncio
import shutil
from pathlib import Path
from typing import Optional
from uuid import UUID, uuid4

import structlog
from fastapi import APIRouter, Cookie, Depends, File, Form, Response, UploadFile, status

from vidtube.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user,
    get_optional_user,
)
from vidtube.config import get_settings
from vidtube.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenPair,
    UpdateAccountRequest,
)
from vidtube.models.channel import ChannelProfile, WatchHistoryItem
from vidtube.models.user import User
from vidtube.services.channel_service import ChannelService
from vidtube.services.media_service import MediaService
from vidtube.services.session_service import SessionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _write_staged(source, staged_path: Path) -> None:
    staged_path.parent.mkdir(parents=True, exist_ok=True)
    with staged_path.open("wb") as buffer:
        shutil.copyfileobj(source, buffer)


async def _stage_upload(file: Optional[UploadFile]) -> Optional[str]:
    """Copy a multipart file into the local staging directory.

    The copy runs in the default executor so large files do not stall the
    event loop.

    Returns:
        Path of the staged file, or None if no file was sent
    """
    if file is None or not file.filename:
        return None

    staged_path = Path(get_settings().upload_dir) / f"{uuid4()}_{Path(file.filename).name}"

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _write_staged, file.file, staged_path)

    logger.debug("upload_staged", filename=file.filename, content_type=file.content_type)
    return str(staged_path)


def _set_session_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    secure = get_settings().cookie_secure
    for name, value in (
        (ACCESS_TOKEN_COOKIE, access_token),
        (REFRESH_TOKEN_COOKIE, refresh_token),
    ):
        response.set_cookie(name, value, httponly=True, secure=secure, samesite="lax")


def _clear_session_cookies(response: Response) -> None:
    secure = get_settings().cookie_secure
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(name, httponly=True, secure=secure, samesite="lax")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    full_name: str = Form(""),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
) -> User:
    """Register a new account.

    Multipart form: ``full_name``, ``email``, ``username``, ``password``,
    ``avatar`` (required file) and ``cover_image`` (optional file).

    Raises:
        400: Missing field or avatar, or avatar upload failed
        409: Username or email already taken
    """
    avatar_path = await _stage_upload(avatar)
    cover_image_path = await _stage_upload(cover_image)

    try:
        return await SessionService().register(
            full_name=full_name,
            email=email,
            username=username,
            password=password,
            avatar_path=avatar_path,
            cover_image_path=cover_image_path,
        )
    finally:
        MediaService.discard(avatar_path)
        MediaService.discard(cover_image_path)


@router.post("/login")
async def login(request: LoginRequest, response: Response) -> LoginResponse:
    """Login with email or username and password.

    The token pair is returned in the body and also set as http-only cookies.
    """
    session_service = SessionService()
    user, access_token, refresh_token = await session_service.login(
        password=request.password,
        email=request.email,
        username=request.username,
    )

    _set_session_cookies(response, access_token, refresh_token)
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=session_service.auth_service.access_token_ttl_seconds,
        user=user,
    )


@router.post("/logout")
async def logout(
    response: Response, current_user: User = Depends(get_current_user)
) -> dict:
    """Revoke the caller's refresh token and clear both cookies."""
    await SessionService().logout(current_user.id)
    _clear_session_cookies(response)
    return {}


@router.post("/refresh-token")
async def refresh_token(
    response: Response,
    body: Optional[RefreshRequest] = None,
    cookie_token: Optional[str] = Cookie(None, alias=REFRESH_TOKEN_COOKIE),
) -> TokenPair:
    """Exchange a refresh token (cookie or body) for a new pair.

    The presented token stops working once this succeeds.
    """
    incoming = cookie_token or (body.refresh_token if body else None)

    session_service = SessionService()
    access_token, new_refresh_token = await session_service.refresh(incoming)

    _set_session_cookies(response, access_token, new_refresh_token)
    return TokenPair(
        access_token=access_token,
        refresh_token=new_refresh_token,
        expires_in=session_service.auth_service.access_token_ttl_seconds,
    )


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Change the caller's password. Existing refresh tokens stop working."""
    await SessionService().change_password(
        current_user.id, request.old_password, request.new_password
    )
    return {}


@router.get("/current-user")
async def current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.patch("/update-account")
async def update_account(
    request: UpdateAccountRequest,
    current_user: User = Depends(get_current_user),
) -> User:
    """Update the caller's full name and email (both required)."""
    return await SessionService().update_account_details(
        current_user.id, request.full_name, request.email
    )


@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
) -> User:
    """Replace the caller's avatar; the previous file is deleted."""
    staged = await _stage_upload(avatar)
    try:
        return await SessionService().update_avatar(current_user.id, staged)
    finally:
        MediaService.discard(staged)


@router.patch("/cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
) -> User:
    """Replace the caller's cover image; the previous file is deleted."""
    staged = await _stage_upload(cover_image)
    try:
        return await SessionService().update_cover_image(current_user.id, staged)
    finally:
        MediaService.discard(staged)


@router.get("/c/{username}")
async def channel_profile(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
) -> ChannelProfile:
    """Public channel profile; ``is_subscribed`` reflects the caller, if any."""
    return await ChannelService().get_channel_profile(
        username, viewer_id=viewer.id if viewer else None
    )


@router.get("/history")
async def watch_history(
    current_user: User = Depends(get_current_user),
) -> list[WatchHistoryItem]:
    """The caller's watch history, most recent first."""
    return await ChannelService().get_watch_history(current_user.id)


@router.post("/history/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def record_watch(
    video_id: UUID,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Record that the caller watched a video."""
    await SessionService().record_watch(current_user.id, video_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
