"""User account endpoints: registration, sessions, profiles and roles."""

from uuid import UUID

import asyncpg
import structlog
from fastapi import APIRouter, Depends, status

from marketplace.api.dependencies import (
    get_auth_service,
    get_current_user,
    get_refresh_token_manager,
    get_user_service,
    require_admin,
    require_owner_or_role,
)
from marketplace.api.uploads import ImagePayload, image_payload
from marketplace.errors import NotFound, Unauthenticated, ValidationError
from marketplace.models.auth import (
    AuthResponse,
    ChangeRoleRequest,
    LoginRequest,
    PublicProfile,
    RefreshRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserSummary,
)
from marketplace.models.user import Role, User
from marketplace.services.auth_service import AuthService
from marketplace.services.media_service import MediaService
from marketplace.services.product_service import ProductService
from marketplace.services.refresh_tokens import RefreshTokenManager
from marketplace.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

INVALID_CREDENTIALS = "Invalid email or password"

profile_body = image_payload("image")


def user_summary(user: User) -> UserSummary:
    """Convert a User model to a UserSummary response."""
    return UserSummary(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        phone=user.phone,
        image=user.image,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
    )


def _auth_response(
    user: User, access_token: str, refresh_token: str, auth_service: AuthService
) -> AuthResponse:
    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=auth_service.access_token_expires_in,
        user=user_summary(user),
    )


async def _start_session(
    user: User,
    auth_service: AuthService,
    refresh_tokens: RefreshTokenManager,
) -> AuthResponse:
    """Issue a fresh access/refresh pair, replacing any existing session."""
    refresh_token = await refresh_tokens.issue(user)
    access_token = auth_service.create_access_token(user)
    return _auth_response(user, access_token, refresh_token, auth_service)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    users: UserService = Depends(get_user_service),
    auth_service: AuthService = Depends(get_auth_service),
    refresh_tokens: RefreshTokenManager = Depends(get_refresh_token_manager),
) -> AuthResponse:
    """Create an account and sign it in.

    Raises:
        ValidationError: If the email is already registered
    """
    if await users.email_exists(request.email):
        raise ValidationError("User with this email already exists")

    try:
        user = await users.create_user(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            password_hash=auth_service.hash_password(request.password),
            phone=request.phone,
        )
    except asyncpg.UniqueViolationError:
        raise ValidationError("User with this email already exists")

    logger.info("user_registered", user_id=str(user.id))
    return await _start_session(user, auth_service, refresh_tokens)


@router.post("/login")
async def login(
    request: LoginRequest,
    users: UserService = Depends(get_user_service),
    auth_service: AuthService = Depends(get_auth_service),
    refresh_tokens: RefreshTokenManager = Depends(get_refresh_token_manager),
) -> AuthResponse:
    """Login with email and password.

    Unknown email and wrong password get the same answer.

    Raises:
        Unauthenticated: If credentials are invalid or the account is deactivated
    """
    result = await users.get_by_email(request.email)

    if result is None:
        raise Unauthenticated(INVALID_CREDENTIALS)

    user, password_hash = result

    if not auth_service.verify_password(request.password, password_hash):
        logger.info("login_failed", user_id=str(user.id))
        raise Unauthenticated(INVALID_CREDENTIALS)

    if not user.is_active:
        raise Unauthenticated("Your account has been deactivated")

    logger.info("user_logged_in", user_id=str(user.id))
    return await _start_session(user, auth_service, refresh_tokens)


@router.post("/refresh-token")
async def refresh_token(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
    refresh_tokens: RefreshTokenManager = Depends(get_refresh_token_manager),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    The presented token is rotated out and cannot be used again.

    Raises:
        ValidationError: If no refresh token was sent
        InvalidOrExpiredToken: If the token is not current
    """
    if not request.refresh_token:
        raise ValidationError("Refresh token is required")

    user, access_token, new_refresh_token = await refresh_tokens.rotate(
        request.refresh_token
    )
    return _auth_response(user, access_token, new_refresh_token, auth_service)


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    refresh_tokens: RefreshTokenManager = Depends(get_refresh_token_manager),
) -> dict:
    """Clear the caller's refresh token."""
    await refresh_tokens.revoke(current_user)
    logger.info("user_logged_out", user_id=str(current_user.id))
    return {"success": True, "message": "Logged out successfully"}


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)) -> dict:
    return {"success": True, "user": user_summary(current_user)}


@router.put("/profile")
async def update_profile(
    current_user: User = Depends(get_current_user),
    payload: ImagePayload = Depends(profile_body),
    users: UserService = Depends(get_user_service),
) -> dict:
    """Update the caller's name, phone or image.

    The image may be a URL or an uploaded file; a replaced image is
    destroyed.
    """
    request = payload.validate(UpdateProfileRequest)
    request = await payload.upload(request, MediaService(), "users")
    updated = await users.update_profile(
        current_user.id,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
        image=request.image,
    )

    if updated is None:
        raise NotFound("User not found")

    if request.image and current_user.image and request.image != current_user.image:
        await MediaService().delete_image(current_user.image)

    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": user_summary(updated),
    }


@router.get("")
async def list_users(
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> dict:
    """List all users (admin only)."""
    all_users = await users.list_users()
    return {
        "success": True,
        "count": len(all_users),
        "users": [user_summary(u) for u in all_users],
    }


@router.get("/{user_id}")
async def get_user(
    user_id: UUID,
    users: UserService = Depends(get_user_service),
) -> dict:
    """Public profile of an active account (public)."""
    user = await users.get_by_id(user_id)

    if user is None or not user.is_active:
        raise NotFound("User not found")

    return {
        "success": True,
        "user": PublicProfile(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            image=user.image,
            created_at=user.created_at,
        ),
    }


@router.delete("/{user_id}")
async def delete_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict:
    """Deactivate an account. Users may delete themselves; admins anyone.

    Deactivation also drops the refresh token, and the request gate
    rejects the account's outstanding access tokens from the next request.
    """
    require_owner_or_role(
        current_user, user_id, Role.ADMIN, "Not authorized to delete this user"
    )

    deactivated = await users.deactivate(user_id)

    if deactivated is None:
        raise NotFound("User not found")

    logger.info(
        "user_soft_deleted",
        user_id=str(user_id),
        actor_id=str(current_user.id),
    )
    return {"success": True, "message": "User deactivated successfully"}


@router.put("/{user_id}/role")
async def change_role(
    user_id: UUID,
    request: ChangeRoleRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> dict:
    """Change a user's role (admin only)."""
    try:
        role = Role(request.role)
    except ValueError:
        raise ValidationError("Invalid role specified")

    updated = await users.set_role(user_id, role)

    if updated is None:
        raise NotFound("User not found")

    logger.info(
        "admin_changed_role",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
        role=role.value,
    )
    return {
        "success": True,
        "message": f"User role updated to {role.value}",
        "user": user_summary(updated),
    }


@router.get("/{user_id}/products")
async def list_user_products(user_id: UUID) -> dict:
    """Active listings published by a user (public)."""
    products = await ProductService().list_by_publisher(user_id)
    return {"success": True, "count": len(products), "products": products}
