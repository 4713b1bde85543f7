"""FastAPI dependencies that resolve the calling user from an access token."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vidtube.exceptions import UnauthorizedError
from vidtube.models.user import User
from vidtube.services.auth_service import AuthService, InvalidTokenError
from vidtube.services.user_service import UserService

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# Don't auto-fail without a header; the cookie is checked next
bearer_scheme = HTTPBearer(auto_error=False)


def _extract_access_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Take the token from the Authorization header, else the access cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


async def _resolve_user(token: str) -> User:
    auth_service = AuthService()
    try:
        payload = auth_service.validate_access_token(token)
        user_id = UUID(payload["sub"])
    except (InvalidTokenError, ValueError):
        raise UnauthorizedError("Invalid or expired access token")

    user = await UserService().get_by_id(user_id)
    if user is None:
        logger.warning("access_token_user_missing", user_id=str(user_id))
        raise UnauthorizedError("Invalid access token")

    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Resolve the authenticated caller.

    Accepts ``Authorization: Bearer <token>`` or the ``accessToken`` cookie.

    Raises:
        UnauthorizedError: If no token is present, it is invalid or expired,
            or its user no longer exists
    """
    token = _extract_access_token(request, credentials)
    if not token:
        raise UnauthorizedError("Unauthorized request")
    return await _resolve_user(token)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    """Resolve the caller if a valid access token is present, else None.

    An invalid or expired token is treated as an anonymous caller.
    """
    token = _extract_access_token(request, credentials)
    if not token:
        return None
    try:
        return await _resolve_user(token)
    except UnauthorizedError:
        return None
