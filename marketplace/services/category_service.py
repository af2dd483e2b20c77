"""Category persistence service."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from marketplace.database import get_pool
from marketplace.models.category import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    slugify,
)

logger = structlog.get_logger(__name__)

CATEGORY_COLUMNS = "id, name, slug, description, image, is_active, created_at, updated_at"


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (ValueError, TypeError):
        return None


class CategoryService:
    """Service for category CRUD operations."""

    async def list_active(self) -> list[Category]:
        """Active categories ordered by name."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {CATEGORY_COLUMNS}
                FROM categories
                WHERE is_active = TRUE
                ORDER BY name ASC
                """
            )

        return [Category(**dict(row)) for row in rows]

    async def get_by_id(
        self, category_id: UUID, active_only: bool = True
    ) -> Optional[Category]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {CATEGORY_COLUMNS}
                FROM categories
                WHERE id = $1 AND (is_active = TRUE OR NOT $2)
                """,
                category_id,
                active_only,
            )

        return Category(**dict(row)) if row else None

    async def get_by_slug(self, slug: str) -> Optional[Category]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {CATEGORY_COLUMNS}
                FROM categories
                WHERE slug = $1 AND is_active = TRUE
                """,
                slug.lower(),
            )

        return Category(**dict(row)) if row else None

    async def get_by_id_or_slug(self, key: str) -> Optional[Category]:
        """Resolve an active category from either its id or its slug."""
        category_id = _parse_uuid(key)
        if category_id is not None:
            category = await self.get_by_id(category_id)
            if category is not None:
                return category
        return await self.get_by_slug(key)

    async def find_conflict(
        self, name: str, slug: str, exclude_id: Optional[UUID] = None
    ) -> Optional[Category]:
        """Another category already using this name or slug, if any."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {CATEGORY_COLUMNS}
                FROM categories
                WHERE (LOWER(name) = LOWER($1) OR slug = $2)
                  AND ($3::uuid IS NULL OR id <> $3)
                LIMIT 1
                """,
                name,
                slug,
                exclude_id,
            )

        return Category(**dict(row)) if row else None

    async def create(self, data: CategoryCreate) -> Category:
        """Insert a category; the slug is derived from the name.

        Raises:
            asyncpg.UniqueViolationError: If the name or slug is taken
        """
        category_id = uuid4()
        now = datetime.now(timezone.utc)
        slug = slugify(data.name)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO categories (id, name, slug, description, image, is_active,
                                        created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, TRUE, $6, $7)
                RETURNING {CATEGORY_COLUMNS}
                """,
                category_id,
                data.name.strip(),
                slug,
                data.description,
                data.image,
                now,
                now,
            )

        logger.info("category_created", category_id=str(category_id), slug=slug)
        return Category(**dict(row))

    async def update(
        self, category_id: UUID, data: CategoryUpdate
    ) -> Optional[Category]:
        """Update provided fields; a new name also regenerates the slug."""
        fields = data.model_dump(exclude_none=True)
        if "name" in fields:
            fields["name"] = fields["name"].strip()
            fields["slug"] = slugify(fields["name"])

        if not fields:
            return await self.get_by_id(category_id, active_only=False)

        set_clauses = []
        params = []
        for column, value in fields.items():
            params.append(value)
            set_clauses.append(f"{column} = ${len(params)}")

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        params.append(category_id)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE categories
                SET {', '.join(set_clauses)}
                WHERE id = ${len(params)}
                RETURNING {CATEGORY_COLUMNS}
                """,
                *params,
            )

        if row is None:
            return None

        logger.info(
            "category_updated",
            category_id=str(category_id),
            fields_updated=list(fields),
        )
        return Category(**dict(row))

    async def delete(self, category_id: UUID) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM categories WHERE id = $1",
                category_id,
            )

        deleted = result == "DELETE 1"
        if deleted:
            logger.info("category_deleted", category_id=str(category_id))
        return deleted

    async def count(self) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM categories")
