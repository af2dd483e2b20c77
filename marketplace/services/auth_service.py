"""Password hashing and JWT access tokens."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import bcrypt
import jwt
import structlog
from pydantic import ValidationError as PydanticValidationError

from marketplace.config import Settings, get_settings
from marketplace.errors import InvalidToken
from marketplace.models.auth import MAX_PASSWORD_BYTES, TokenClaims
from marketplace.models.user import User

logger = structlog.get_logger(__name__)

# Defaults, overridable through Settings
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60
REFRESH_TOKEN_EXPIRE_DAYS = 7

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuthConfig:
    """Signing secret and token lifetimes for the auth services."""

    secret: str
    algorithm: str = JWT_ALGORITHM
    access_token_ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    refresh_token_ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            access_token_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_token_ttl=timedelta(days=settings.refresh_token_expire_days),
        )


class AuthService:
    """Service for password verification and access token issuance."""

    def __init__(
        self,
        config: Optional[AuthConfig] = None,
        clock: Clock = utc_now,
    ):
        self.config = config or AuthConfig.from_settings(get_settings())
        self.clock = clock

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.config.access_token_ttl.total_seconds())

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        bcrypt raises ValueError for passwords over 72 bytes. Request
        validation rejects those before they get here.

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

        A wrong password returns False. So does one longer than bcrypt's
        72-byte limit, since no stored hash can match it. A malformed hash
        raises ValueError from bcrypt and propagates as an internal error.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise
        """
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(
            encoded,
            password_hash.encode("utf-8"),
        )

    def create_access_token(self, user: User) -> str:
        """Create a signed JWT access token for a user.

        Args:
            user: The authenticated user; id, email and role become claims

        Returns:
            Encoded JWT string
        """
        now = self.clock()
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "iat": now,
            "exp": now + self.config.access_token_ttl,
        }
        token = jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)
        logger.debug(
            "access_token_created",
            user_id=str(user.id),
            expires_seconds=self.access_token_expires_in,
        )
        return token

    def validate_access_token(self, token: str) -> TokenClaims:
        """Decode and validate a JWT access token.

        Signature, structure and expiry failures all raise the same
        InvalidToken. Expiry is compared against the service clock rather
        than PyJWT's wall clock.

        Args:
            token: Encoded JWT string

        Returns:
            The id, email and role carried by the token

        Raises:
            InvalidToken: If the token is invalid, expired, or malformed
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                options={
                    "require": ["sub", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.info("access_token_rejected", reason=type(e).__name__)
            raise InvalidToken()

        exp = payload["exp"]
        if not isinstance(exp, (int, float)) or exp <= self.clock().timestamp():
            logger.info("access_token_rejected", reason="expired")
            raise InvalidToken()

        try:
            return TokenClaims(
                id=payload["sub"],
                email=payload.get("email", ""),
                role=payload.get("role"),
            )
        except PydanticValidationError:
            logger.info("access_token_rejected", reason="bad_claims")
            raise InvalidToken()
