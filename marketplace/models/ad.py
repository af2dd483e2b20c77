"""Promotional ad models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from marketplace.models.common import CamelModel


class AdPosition(str, Enum):
    """Page slot an ad is displayed in."""

    HOME_HERO = "home-hero"
    HOME_MIDDLE = "home-middle"
    HOME_BOTTOM = "home-bottom"
    SIDEBAR = "sidebar"
    PRODUCT_PAGE = "product-page"


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps are taken as UTC
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


def check_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start and end and end < start:
        raise ValueError("End date must be after start date")


class Ad(CamelModel):
    """A promotional ad."""

    id: UUID
    title: str
    description: str
    image: str
    link: Optional[str] = None
    position: AdPosition = AdPosition.HOME_MIDDLE
    is_active: bool = True
    start_date: datetime
    end_date: Optional[datetime] = None
    created_by: UUID
    impressions: int = 0
    clicks: int = 0
    created_at: datetime
    updated_at: datetime


class AdCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    image: str = Field(..., min_length=1, max_length=2048)
    link: Optional[str] = Field(default=None, max_length=2048)
    position: AdPosition = AdPosition.HOME_MIDDLE
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def window_ordered(self) -> "AdCreate":
        check_window(self.start_date, self.end_date)
        return self


class AdUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    image: Optional[str] = Field(default=None, min_length=1, max_length=2048)
    link: Optional[str] = Field(default=None, max_length=2048)
    position: Optional[AdPosition] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def window_ordered(self) -> "AdUpdate":
        # Only when both ends are sent; update_ad checks against stored dates
        check_window(self.start_date, self.end_date)
        return self


class AdStats(CamelModel):
    total_ads: int = 0
    active_ads: int = 0
    total_impressions: int = 0
    total_clicks: int = 0
