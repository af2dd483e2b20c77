"""Promotional ad persistence and engagement counters."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from marketplace.database import get_pool
from marketplace.models.ad import Ad, AdCreate, AdPosition, AdStats, AdUpdate

logger = structlog.get_logger(__name__)

AD_COLUMNS = """
    id, title, description, image, link, position, is_active, start_date,
    end_date, created_by, impressions, clicks, created_at, updated_at
"""

MAX_ADS_PER_POSITION = 3

# Ad is live at $n: active and inside its display window
LIVE_AT = "is_active = TRUE AND start_date <= {0} AND (end_date IS NULL OR end_date >= {0})"

COUNTERS = {"impression": "impressions", "click": "clicks"}


class AdService:
    """Service for ad CRUD and impression/click tracking."""

    async def list_all(self) -> list[Ad]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {AD_COLUMNS} FROM ads ORDER BY created_at DESC"
            )

        return [Ad(**dict(row)) for row in rows]

    async def live_for_position(
        self, position: AdPosition, now: Optional[datetime] = None
    ) -> list[Ad]:
        """Newest ads currently showing in a page slot (at most three)."""
        now = now or datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {AD_COLUMNS}
                FROM ads
                WHERE position = $1 AND {LIVE_AT.format('$2')}
                ORDER BY created_at DESC
                LIMIT $3
                """,
                position.value,
                now,
                MAX_ADS_PER_POSITION,
            )

        logger.debug("ads_served", position=position.value, count=len(rows))
        return [Ad(**dict(row)) for row in rows]

    async def get(self, ad_id: UUID) -> Optional[Ad]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {AD_COLUMNS} FROM ads WHERE id = $1",
                ad_id,
            )

        return Ad(**dict(row)) if row else None

    async def create(self, data: AdCreate, created_by: UUID) -> Ad:
        ad_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO ads (id, title, description, image, link, position, is_active,
                                 start_date, end_date, created_by, impressions, clicks,
                                 created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, 0, 0, $11, $12)
                RETURNING {AD_COLUMNS}
                """,
                ad_id,
                data.title,
                data.description,
                data.image,
                data.link,
                data.position.value,
                data.is_active,
                data.start_date or now,
                data.end_date,
                created_by,
                now,
                now,
            )

        logger.info("ad_created", ad_id=str(ad_id), position=data.position.value)
        return Ad(**dict(row))

    async def update(self, ad_id: UUID, data: AdUpdate) -> Optional[Ad]:
        fields = data.model_dump(exclude_unset=True)
        fields = {
            k: (v.value if isinstance(v, AdPosition) else v)
            for k, v in fields.items()
            # end_date may be explicitly cleared; other fields only set
            if v is not None or k == "end_date"
        }

        set_clauses = []
        params = []
        for column, value in fields.items():
            params.append(value)
            set_clauses.append(f"{column} = ${len(params)}")

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        params.append(ad_id)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE ads
                SET {', '.join(set_clauses)}
                WHERE id = ${len(params)}
                RETURNING {AD_COLUMNS}
                """,
                *params,
            )

        if row is None:
            return None

        logger.info("ad_updated", ad_id=str(ad_id), fields_updated=list(fields))
        return Ad(**dict(row))

    async def delete(self, ad_id: UUID) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM ads WHERE id = $1", ad_id)

        deleted = result == "DELETE 1"
        if deleted:
            logger.info("ad_deleted", ad_id=str(ad_id))
        return deleted

    async def track(self, ad_id: UUID, event: str) -> bool:
        """Increment the impression or click counter of an ad.

        Args:
            ad_id: Ad to count against
            event: "impression" or "click"

        Returns:
            True if the ad exists
        """
        column = COUNTERS[event]
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                f"UPDATE ads SET {column} = {column} + 1 WHERE id = $1",
                ad_id,
            )

        return result == "UPDATE 1"

    async def stats(
        self, created_by: UUID, now: Optional[datetime] = None
    ) -> AdStats:
        """Totals over the ads created by one admin."""
        now = now or datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT COUNT(*) AS total_ads,
                       COUNT(*) FILTER (WHERE {LIVE_AT.format('$2')}) AS active_ads,
                       COALESCE(SUM(impressions), 0) AS total_impressions,
                       COALESCE(SUM(clicks), 0) AS total_clicks
                FROM ads
                WHERE created_by = $1
                """,
                created_by,
                now,
            )

        return AdStats(**dict(row))

    async def count(self) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM ads")
