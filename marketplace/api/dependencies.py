"""FastAPI dependencies for authentication and authorization.

``get_current_user`` is the request gate for every protected route: it
verifies the bearer token and reloads the user on each request, so a
deactivated account loses access immediately even while its access token
is still validly signed and unexpired. ``require_role`` and
``require_owner_or_role`` run after it.
"""

from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace.errors import Forbidden, InvalidToken, Unauthenticated
from marketplace.models.user import Role, User
from marketplace.services.auth_service import AuthService
from marketplace.services.refresh_tokens import RefreshTokenManager
from marketplace.services.user_service import UserService

logger = structlog.get_logger(__name__)

# auto_error=False: a missing header or a non-Bearer scheme yields None and
# is answered with our own 401 envelope
bearer_scheme = HTTPBearer(auto_error=False)


def get_user_service() -> UserService:
    return UserService()


def get_auth_service() -> AuthService:
    return AuthService()


def get_refresh_token_manager(
    users: UserService = Depends(get_user_service),
    auth_service: AuthService = Depends(get_auth_service),
) -> RefreshTokenManager:
    return RefreshTokenManager(users, auth_service=auth_service)


def _as_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def same_identity(a: Any, b: Any) -> bool:
    """Compare two user ids regardless of representation.

    ``UUID("…")``, ``"…"`` and the upper-cased string of the same id are
    all equal. Values that are not UUIDs fall back to string equality.
    """
    if a is None or b is None:
        return False
    ua, ub = _as_uuid(a), _as_uuid(b)
    if ua is not None and ub is not None:
        return ua == ub
    return str(a) == str(b)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
    users: UserService = Depends(get_user_service),
) -> User:
    """Authenticate the request from its Bearer token.

    The loaded user is also attached to ``request.state.user``.

    Returns:
        Authenticated, active User model

    Raises:
        Unauthenticated: If the header is missing or malformed, the token is
            invalid or expired, or the user is gone or deactivated
    """
    if credentials is None:
        logger.info("auth_rejected", reason="missing_bearer", path=request.url.path)
        raise Unauthenticated()

    try:
        claims = auth_service.validate_access_token(credentials.credentials)
    except InvalidToken:
        raise Unauthenticated("Not authorized, token failed")

    user_id = _as_uuid(claims.id)
    if user_id is None:
        raise Unauthenticated("Not authorized, token failed")

    user = await users.get_by_id(user_id)

    if user is None or not user.is_active:
        logger.info("auth_rejected", reason="user_unavailable", user_id=str(user_id))
        raise Unauthenticated("User not found or inactive")

    request.state.user = user
    return user


def require_role(role: Role) -> Callable:
    """Build a dependency that admits only users holding ``role``."""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            logger.info(
                "authorization_denied",
                user_id=str(current_user.id),
                required_role=role.value,
            )
            raise Forbidden(f"Not authorized: {role.value} role required")
        return current_user

    dependency.__name__ = f"require_{role.value}"
    return dependency


require_admin = require_role(Role.ADMIN)


def require_owner_or_role(
    identity: User,
    owner_id: Any,
    role: Role = Role.ADMIN,
    message: Optional[str] = None,
) -> None:
    """Admit the resource owner, or anyone holding ``role``.

    Raises:
        Forbidden: If the identity is neither the owner nor holds the role
    """
    if same_identity(identity.id, owner_id) or identity.role == role:
        return

    logger.info(
        "authorization_denied",
        user_id=str(identity.id),
        owner_id=str(owner_id),
        required_role=role.value,
    )
    raise Forbidden(message)
