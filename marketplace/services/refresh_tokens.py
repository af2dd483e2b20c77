"""Refresh token lifecycle: issue, validate, rotate and revoke.

Each user holds at most one refresh token, stored on the user record as a
SHA-256 digest with an expiry. A session moves through::

    no session --issue--> active(T + ttl) --rotate--> active(T' + ttl)
    active --revoke | expiry--> no session

Rotation replaces the token outright. The presented token stops working
the moment a rotation succeeds, and there is no grace window.
"""

import hashlib
import secrets
from typing import Optional

import structlog

from marketplace.errors import InvalidOrExpiredToken
from marketplace.models.user import User
from marketplace.services.auth_service import (
    AuthConfig,
    AuthService,
    Clock,
    utc_now,
)
from marketplace.services.user_service import UserService

logger = structlog.get_logger(__name__)

REFRESH_TOKEN_BYTES = 40


def hash_refresh_token(raw_token: str) -> str:
    """Digest under which a refresh token is stored and looked up."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    """A new opaque refresh token: 40 random bytes, hex encoded."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


class RefreshTokenManager:
    """Issues and rotates the long-lived refresh token of each user."""

    def __init__(
        self,
        users: UserService,
        auth_service: Optional[AuthService] = None,
        config: Optional[AuthConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.users = users
        self.auth_service = auth_service or AuthService(config=config, clock=clock or utc_now)
        self.config = config or self.auth_service.config
        self.clock = clock or self.auth_service.clock

    async def issue(self, user: User) -> str:
        """Create a refresh token for a user, replacing any previous one.

        Args:
            user: User the token belongs to

        Returns:
            The raw token; only its digest is persisted
        """
        raw_token = generate_refresh_token()
        expires_at = self.clock() + self.config.refresh_token_ttl

        await self.users.store_refresh_token(
            user.id, hash_refresh_token(raw_token), expires_at
        )

        logger.info(
            "refresh_token_issued",
            user_id=str(user.id),
            expires_at=expires_at.isoformat(),
        )
        return raw_token

    async def validate(self, raw_token: str) -> User:
        """Resolve a refresh token to its active owner.

        Wrong, expired, revoked and rotated-out tokens are indistinguishable
        to the caller.

        Raises:
            InvalidOrExpiredToken: If no active user holds this unexpired token
        """
        if not raw_token:
            raise InvalidOrExpiredToken()

        user = await self.users.find_by_refresh_token(
            hash_refresh_token(raw_token), self.clock()
        )
        if user is None:
            logger.warning("refresh_token_rejected")
            raise InvalidOrExpiredToken()

        return user

    async def rotate(self, raw_token: str) -> tuple[User, str, str]:
        """Exchange a refresh token for a new access and refresh token pair.

        The old token is replaced by a single conditional update that only
        matches while the old token is still current, so a token can be
        rotated at most once.

        Returns:
            Tuple of (user, new_access_token, new_refresh_token)

        Raises:
            InvalidOrExpiredToken: If the token is not current
        """
        if not raw_token:
            raise InvalidOrExpiredToken()

        now = self.clock()
        new_token = generate_refresh_token()
        user = await self.users.swap_refresh_token(
            old_hash=hash_refresh_token(raw_token),
            new_hash=hash_refresh_token(new_token),
            new_expires_at=now + self.config.refresh_token_ttl,
            now=now,
        )

        if user is None:
            logger.warning("refresh_token_rotation_rejected")
            raise InvalidOrExpiredToken()

        access_token = self.auth_service.create_access_token(user)
        logger.info("refresh_token_rotated", user_id=str(user.id))
        return user, access_token, new_token

    async def revoke(self, user: User) -> None:
        """End the user's session. Revoking twice is harmless."""
        await self.users.clear_refresh_token(user.id)
        logger.info("refresh_token_revoked", user_id=str(user.id))
