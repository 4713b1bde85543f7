"""Password hashing and JWT issuance/validation."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
import jwt
import structlog

from vidtube.config import get_settings

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# bcrypt rejects longer input
MAX_PASSWORD_BYTES = 72


class InvalidTokenError(ValueError):
    """Raised when a token has a bad signature, is expired, or is malformed."""


class AuthService:
    """Credential verification and token issuance.

    Issuing tokens is pure: nothing here touches storage. Persisting the
    refresh token against the user is the caller's responsibility.
    """

    def __init__(self):
        self.settings = get_settings()

    @staticmethod
    def password_fits(password: str) -> bool:
        """Whether a password is within bcrypt's input limit (UTF-8 bytes)."""
        return len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Callers reject passwords that fail ``password_fits`` first; bcrypt
        raises ``ValueError`` for them.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise (including when
            the password is too long to have been stored, or the stored
            hash is not a valid bcrypt string)
        """
        if not self.password_fits(password):
            return False
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except ValueError:
            logger.warning("password_hash_malformed")
            return False

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.settings.access_token_expire_minutes * 60

    def create_access_token(self, user_id: str, username: str, email: str) -> str:
        """Create a signed, short-lived access token.

        Args:
            user_id: User UUID as string (placed in 'sub' claim)
            username: Username to include in payload
            email: Email to include in payload

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "username": username,
            "email": email,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.access_token_expire_minutes),
        }
        token = jwt.encode(
            payload, self.settings.access_token_secret, algorithm=JWT_ALGORITHM
        )
        logger.debug(
            "access_token_created",
            user_id=user_id,
            expires_minutes=self.settings.access_token_expire_minutes,
        )
        return token

    def create_refresh_token(self, user_id: str) -> str:
        """Create a signed, long-lived refresh token carrying only the user id.

        A random ``jti`` keeps two tokens minted in the same second distinct,
        which rotation depends on.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "type": REFRESH_TOKEN_TYPE,
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + timedelta(days=self.settings.refresh_token_expire_days),
        }
        token = jwt.encode(
            payload, self.settings.refresh_token_secret, algorithm=JWT_ALGORITHM
        )
        logger.debug(
            "refresh_token_created",
            user_id=user_id,
            expires_days=self.settings.refresh_token_expire_days,
        )
        return token

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError(f"{expected_type.capitalize()} token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid {expected_type} token: {e}")

        if payload.get("type") != expected_type:
            raise InvalidTokenError(f"Invalid {expected_type} token: wrong token type")
        if not payload.get("sub"):
            raise InvalidTokenError(f"Invalid {expected_type} token: missing subject")
        return payload

    def validate_access_token(self, token: str) -> dict:
        """Decode and validate an access token.

        Returns:
            Decoded payload dict with sub, username, email, type, iat, exp

        Raises:
            InvalidTokenError: If the token is invalid, expired, or malformed
        """
        return self._decode(token, self.settings.access_token_secret, ACCESS_TOKEN_TYPE)

    def validate_refresh_token(self, token: str) -> UUID:
        """Verify a refresh token's signature and expiry.

        This does not check the token against the stored value; the session
        service does that as part of rotation.

        Returns:
            The user id encoded in the token

        Raises:
            InvalidTokenError: If the token is invalid, expired, or malformed
        """
        payload = self._decode(
            token, self.settings.refresh_token_secret, REFRESH_TOKEN_TYPE
        )
        try:
            return UUID(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidTokenError("Invalid refresh token: malformed subject")

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 digest of a token, the form in which refresh tokens are stored."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
