"""User and role models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Account role. The only source of admin rights."""

    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """A registered user, as loaded without credential fields."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    image: Optional[str] = None
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
