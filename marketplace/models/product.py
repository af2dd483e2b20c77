"""Product (listing) models with validation."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from marketplace.models.category import CategoryRef
from marketplace.models.common import CamelModel

MIN_YEAR = 1700


class Condition(str, Enum):
    """Condition of the listed item."""

    NEW = "new"
    LIKE_NEW = "like-new"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    SALVAGE = "salvage"


class ProductSort(str, Enum):
    """Public listing sort orders. NEWEST is the default."""

    NEWEST = "createdAt"
    PRICE_ASC = "priceAsc"
    PRICE_DESC = "priceDesc"
    YEAR_DESC = "yearDesc"


def _check_year(v: Optional[int]) -> Optional[int]:
    if v is None:
        return v
    max_year = datetime.now(timezone.utc).year + 1
    if v < MIN_YEAR:
        raise ValueError(f"Year must be after {MIN_YEAR}")
    if v > max_year:
        raise ValueError("Year cannot be in the future")
    return v


class PublisherRef(CamelModel):
    """Public view of the user who published a listing."""

    id: UUID
    first_name: str
    last_name: str


class Product(CamelModel):
    """A marketplace listing."""

    id: UUID
    title: str
    description: str
    price: float
    condition: Condition
    year: int
    kilometrage: int
    cylinder: int
    images: list[str]
    location: str
    category: Optional[CategoryRef] = None
    publisher: Optional[PublisherRef] = None
    is_active: bool = True
    is_verified: bool = False
    is_featured: bool = False
    verified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def publisher_id(self) -> Optional[UUID]:
        return self.publisher.id if self.publisher else None


class ProductCreate(CamelModel):
    """New listing.

    ``category`` is the category id; the publisher is always the caller.
    """

    title: str = Field(..., min_length=1, max_length=200)
    category: UUID
    description: str = Field(..., min_length=1, max_length=5000)
    price: float = Field(..., ge=0)
    condition: Condition
    year: int
    kilometrage: int = Field(..., ge=0)
    cylinder: int = Field(..., ge=0)
    images: list[str] = Field(..., min_length=1, max_length=10)
    location: str = Field(..., min_length=1, max_length=200)

    @field_validator("year")
    @classmethod
    def year_in_range(cls, v: int) -> int:
        return _check_year(v)


class ProductUpdate(CamelModel):
    """Listing update. Only provided fields change."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[UUID] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    price: Optional[float] = Field(default=None, ge=0)
    condition: Optional[Condition] = None
    year: Optional[int] = None
    kilometrage: Optional[int] = Field(default=None, ge=0)
    cylinder: Optional[int] = Field(default=None, ge=0)
    images: Optional[list[str]] = Field(default=None, min_length=1, max_length=10)
    location: Optional[str] = Field(default=None, min_length=1, max_length=200)

    @field_validator("year")
    @classmethod
    def year_in_range(cls, v: Optional[int]) -> Optional[int]:
        return _check_year(v)


class ProductFilters(CamelModel):
    """Query filters for the public listing search."""

    keyword: Optional[str] = None
    category: Optional[UUID] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    condition: Optional[Condition] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    sort: ProductSort = ProductSort.NEWEST


class VerifyRequest(CamelModel):
    is_verified: bool


class FeatureRequest(CamelModel):
    is_featured: bool
