"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketplace.models.common import CamelModel
from marketplace.models.user import Role

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# bcrypt ignores everything past this many bytes
MAX_PASSWORD_BYTES = 72


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Please provide a valid email address")
    return v


def _password_not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    return v


def _password_within_limit(v: str) -> str:
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return v


class TokenClaims(BaseModel):
    """Identity asserted by a verified access token."""

    id: str
    email: str
    role: Role


class RegisterRequest(CamelModel):
    """New account registration.

    Attributes:
        first_name: Given name (1-100 chars)
        last_name: Family name (1-100 chars)
        email: Unique login email, stored lower-cased
        password: Plain-text password (8 chars to 72 UTF-8 bytes)
        phone: Optional contact number
    """

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_BYTES)
    phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        """Lower-case the email and check its shape."""
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Reject blank passwords and ones bcrypt would truncate."""
        return _password_within_limit(_password_not_blank(v))


class LoginRequest(CamelModel):
    """Login credentials.

    No length policy is applied to the password here so that a wrong
    password is answered with 401, not a validation error.
    """

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return v.strip().lower()


class RefreshRequest(CamelModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: Optional[str] = None


class UserSummary(CamelModel):
    """User representation for API responses."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    image: Optional[str] = None
    role: Role
    is_active: bool
    created_at: datetime


class PublicProfile(CamelModel):
    """What anyone may see about an account: no contact details or role."""

    id: UUID
    first_name: str
    last_name: str
    image: Optional[str] = None
    created_at: datetime


class AuthResponse(CamelModel):
    """Successful authentication response with token pair.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived opaque token for obtaining new access tokens
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        user: Summary of the authenticated user
    """

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    user: UserSummary


class UpdateProfileRequest(CamelModel):
    """Profile update. Only provided fields change."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    image: Optional[str] = Field(default=None, max_length=2048)


class ChangeRoleRequest(CamelModel):
    """Admin request to change a user's role."""

    role: Optional[str] = None
