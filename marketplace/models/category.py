"""Category models."""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from marketplace.models.common import CamelModel


def slugify(name: str) -> str:
    """Derive a URL slug from a category name.

    Lower-cases, turns whitespace runs into "-" and drops anything that is
    not a word character or "-".
    """
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^\w-]+", "", slug)


class Category(CamelModel):
    """A listing category."""

    id: UUID
    name: str
    slug: str
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class CategoryRef(CamelModel):
    """Compact category embedded in listings."""

    id: UUID
    name: str
    slug: str


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    image: Optional[str] = Field(default=None, max_length=2048)


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    image: Optional[str] = Field(default=None, max_length=2048)
    is_active: Optional[bool] = None
