"""Product (listing) persistence, filtering and search."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from marketplace.database import get_pool
from marketplace.models.category import CategoryRef
from marketplace.models.product import (
    Product,
    ProductCreate,
    ProductFilters,
    ProductUpdate,
    PublisherRef,
)

logger = structlog.get_logger(__name__)

PRODUCT_SELECT = """
    SELECT p.id, p.title, p.description, p.price, p.condition, p.year,
           p.kilometrage, p.cylinder, p.images, p.location, p.is_active,
           p.is_verified, p.is_featured, p.verified_at, p.created_at, p.updated_at,
           c.id AS category_id, c.name AS category_name, c.slug AS category_slug,
           u.id AS publisher_id, u.first_name AS publisher_first_name,
           u.last_name AS publisher_last_name
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
    LEFT JOIN users u ON u.id = p.publisher_id
"""

SEARCH_VECTOR = "to_tsvector('simple', p.title || ' ' || p.description)"

# Whitelisted ORDER BY clauses, keyed by the sort names the API accepts
SORT_ORDERS = {
    "createdAt": "p.created_at DESC",
    "priceAsc": "p.price ASC",
    "priceDesc": "p.price DESC",
    "yearDesc": "p.year DESC",
    "price-asc": "p.price ASC",
    "price-desc": "p.price DESC",
    "title-asc": "p.title ASC",
    "title-desc": "p.title DESC",
}
DEFAULT_ORDER = SORT_ORDERS["createdAt"]

UPDATABLE_COLUMNS = {
    "title": "title",
    "category": "category_id",
    "description": "description",
    "price": "price",
    "condition": "condition",
    "year": "year",
    "kilometrage": "kilometrage",
    "cylinder": "cylinder",
    "images": "images",
    "location": "location",
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_product(row) -> Product:
    category = None
    if row["category_id"] is not None:
        category = CategoryRef(
            id=row["category_id"],
            name=row["category_name"],
            slug=row["category_slug"],
        )

    publisher = None
    if row["publisher_id"] is not None:
        publisher = PublisherRef(
            id=row["publisher_id"],
            first_name=row["publisher_first_name"],
            last_name=row["publisher_last_name"],
        )

    return Product(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        price=float(row["price"]),
        condition=row["condition"],
        year=row["year"],
        kilometrage=row["kilometrage"],
        cylinder=row["cylinder"],
        images=list(row["images"] or []),
        location=row["location"],
        category=category,
        publisher=publisher,
        is_active=row["is_active"],
        is_verified=row["is_verified"],
        is_featured=row["is_featured"],
        verified_at=row["verified_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class _Where:
    """Accumulates WHERE clauses with positional asyncpg parameters."""

    def __init__(self):
        self.clauses: list[str] = []
        self.params: list = []

    def add(self, template: str, *values) -> None:
        """Add a clause; ``{}`` placeholders receive $n for each value."""
        refs = []
        for value in values:
            self.params.append(value)
            refs.append(f"${len(self.params)}")
        self.clauses.append(template.format(*refs))

    def sql(self) -> str:
        return f"WHERE {' AND '.join(self.clauses)}" if self.clauses else ""


class ProductService:
    """Service for listing CRUD, filtering and search."""

    async def list_products(
        self,
        filters: ProductFilters,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Product], int]:
        """Active listings matching the filters, one page at a time.

        Returns:
            Tuple of (products on the page, total matching count)
        """
        where = _Where()
        where.add("p.is_active = TRUE")

        if filters.keyword:
            pattern = f"%{_escape_like(filters.keyword)}%"
            where.add("(p.title ILIKE {0} OR p.description ILIKE {0})", pattern)
        if filters.category:
            where.add("p.category_id = {}", filters.category)
        if filters.min_price is not None:
            where.add("p.price >= {}", filters.min_price)
        if filters.max_price is not None:
            where.add("p.price <= {}", filters.max_price)
        if filters.condition:
            where.add("p.condition = {}", filters.condition.value)
        if filters.min_year is not None:
            where.add("p.year >= {}", filters.min_year)
        if filters.max_year is not None:
            where.add("p.year <= {}", filters.max_year)

        return await self._page(where, SORT_ORDERS.get(filters.sort.value, DEFAULT_ORDER), page, limit)

    async def list_for_admin(
        self,
        search: Optional[str] = None,
        category: Optional[UUID] = None,
        active: Optional[bool] = None,
        sort: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Product], int]:
        """All listings, including inactive ones, for moderation."""
        where = _Where()

        if search:
            pattern = f"%{_escape_like(search)}%"
            where.add("(p.title ILIKE {0} OR p.description ILIKE {0})", pattern)
        if category:
            where.add("p.category_id = {}", category)
        if active is not None:
            where.add("p.is_active = {}", active)

        return await self._page(where, SORT_ORDERS.get(sort or "", DEFAULT_ORDER), page, limit)

    async def _page(
        self, where: _Where, order_by: str, page: int, limit: int
    ) -> tuple[list[Product], int]:
        offset = (page - 1) * limit
        params = [*where.params, limit, offset]
        n = len(where.params)

        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {PRODUCT_SELECT}
                {where.sql()}
                ORDER BY {order_by}
                LIMIT ${n + 1} OFFSET ${n + 2}
                """,
                *params,
            )
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM products p {where.sql()}",
                *where.params,
            )

        return [_row_to_product(row) for row in rows], total

    async def latest(self, limit: int = 6) -> list[Product]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {PRODUCT_SELECT}
                WHERE p.is_active = TRUE
                ORDER BY p.created_at DESC
                LIMIT $1
                """,
                limit,
            )

        return [_row_to_product(row) for row in rows]

    async def search(self, query: str, limit: int = 50) -> list[Product]:
        """Full-text search over title and description, best match first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {PRODUCT_SELECT}
                WHERE p.is_active = TRUE
                  AND {SEARCH_VECTOR} @@ plainto_tsquery('simple', $1)
                ORDER BY ts_rank({SEARCH_VECTOR}, plainto_tsquery('simple', $1)) DESC
                LIMIT $2
                """,
                query,
                limit,
            )

        return [_row_to_product(row) for row in rows]

    async def list_by_publisher(self, publisher_id: UUID) -> list[Product]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {PRODUCT_SELECT}
                WHERE p.publisher_id = $1 AND p.is_active = TRUE
                ORDER BY p.created_at DESC
                """,
                publisher_id,
            )

        return [_row_to_product(row) for row in rows]

    async def list_by_category(self, category_id: UUID) -> list[Product]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                {PRODUCT_SELECT}
                WHERE p.category_id = $1 AND p.is_active = TRUE
                ORDER BY p.created_at DESC
                """,
                category_id,
            )

        return [_row_to_product(row) for row in rows]

    async def get(
        self, product_id: UUID, include_inactive: bool = False
    ) -> Optional[Product]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                {PRODUCT_SELECT}
                WHERE p.id = $1 AND (p.is_active = TRUE OR $2)
                """,
                product_id,
                include_inactive,
            )

        return _row_to_product(row) if row else None

    async def create(self, data: ProductCreate, publisher_id: UUID) -> Product:
        """Insert a listing published by ``publisher_id``."""
        product_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO products (id, title, category_id, description, price, condition,
                                      year, kilometrage, cylinder, images, location,
                                      publisher_id, is_active, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, TRUE, $13, $14)
                """,
                product_id,
                data.title,
                data.category,
                data.description,
                data.price,
                data.condition.value,
                data.year,
                data.kilometrage,
                data.cylinder,
                data.images,
                data.location,
                publisher_id,
                now,
                now,
            )

        logger.info(
            "product_created",
            product_id=str(product_id),
            publisher_id=str(publisher_id),
        )
        return await self.get(product_id)

    async def update(
        self, product_id: UUID, data: ProductUpdate
    ) -> Optional[Product]:
        """Update provided fields of an active listing."""
        fields = data.model_dump(exclude_none=True)

        set_clauses = []
        params = []
        for name, value in fields.items():
            if hasattr(value, "value"):
                value = value.value
            params.append(value)
            set_clauses.append(f"{UPDATABLE_COLUMNS[name]} = ${len(params)}")

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        params.append(product_id)

        pool = await get_pool()

        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                f"""
                UPDATE products
                SET {', '.join(set_clauses)}
                WHERE id = ${len(params)} AND is_active = TRUE
                RETURNING id
                """,
                *params,
            )

        if updated_id is None:
            return None

        logger.info(
            "product_updated",
            product_id=str(product_id),
            fields_updated=list(fields),
        )
        return await self.get(product_id)

    async def soft_delete(self, product_id: UUID) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE products
                SET is_active = FALSE, updated_at = $1
                WHERE id = $2 AND is_active = TRUE
                """,
                datetime.now(timezone.utc),
                product_id,
            )

        deleted = result == "UPDATE 1"
        if deleted:
            logger.info("product_deactivated", product_id=str(product_id))
        return deleted

    async def delete(self, product_id: UUID) -> bool:
        """Hard-delete a listing."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM products WHERE id = $1",
                product_id,
            )

        deleted = result == "DELETE 1"
        if deleted:
            logger.info("product_deleted", product_id=str(product_id))
        return deleted

    async def set_verified(
        self, product_id: UUID, is_verified: bool, verified_by: UUID
    ) -> Optional[Product]:
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                """
                UPDATE products
                SET is_verified = $1,
                    verified_at = CASE WHEN $1 THEN $2::timestamptz ELSE NULL END,
                    verified_by = CASE WHEN $1 THEN $3::uuid ELSE NULL END,
                    updated_at = $2
                WHERE id = $4
                RETURNING id
                """,
                is_verified,
                now,
                verified_by,
                product_id,
            )

        if updated_id is None:
            return None

        logger.info(
            "product_verification_changed",
            product_id=str(product_id),
            is_verified=is_verified,
            admin_id=str(verified_by),
        )
        return await self.get(product_id, include_inactive=True)

    async def set_featured(
        self, product_id: UUID, is_featured: bool
    ) -> Optional[Product]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                """
                UPDATE products
                SET is_featured = $1, updated_at = $2
                WHERE id = $3
                RETURNING id
                """,
                is_featured,
                datetime.now(timezone.utc),
                product_id,
            )

        if updated_id is None:
            return None

        logger.info(
            "product_featured_changed",
            product_id=str(product_id),
            is_featured=is_featured,
        )
        return await self.get(product_id, include_inactive=True)

    async def count_in_category(self, category_id: UUID) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM products WHERE category_id = $1",
                category_id,
            )
