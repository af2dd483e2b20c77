"""Services package exports."""

from marketplace.services.auth_service import AuthConfig, AuthService
from marketplace.services.logging_service import configure_logging, get_logger
from marketplace.services.refresh_tokens import RefreshTokenManager
from marketplace.services.user_service import UserService

__all__ = [
    "AuthConfig",
    "AuthService",
    "RefreshTokenManager",
    "UserService",
    "configure_logging",
    "get_logger",
]
