"""Aggregates for the admin dashboard."""

import structlog

from marketplace.database import get_pool

logger = structlog.get_logger(__name__)

RECENT_LIMIT = 5


class AdminService:
    """Read-only dashboard statistics across all resources."""

    async def dashboard_stats(self) -> dict:
        """Collect totals, recent activity and per-category listing counts.

        Returns:
            Dict with total counts, recent users and products, products per
            category, and verified vs pending listing counts
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            totals = await conn.fetchrow(
                """
                SELECT (SELECT COUNT(*) FROM users) AS total_users,
                       (SELECT COUNT(*) FROM products) AS total_products,
                       (SELECT COUNT(*) FROM categories) AS total_categories,
                       (SELECT COUNT(*) FROM ads) AS total_ads,
                       (SELECT COUNT(*) FROM products WHERE is_verified) AS verified_listings,
                       (SELECT COUNT(*) FROM products WHERE NOT is_verified) AS pending_listings
                """
            )
            recent_users = await conn.fetch(
                """
                SELECT id, first_name, last_name, email, role, created_at
                FROM users
                ORDER BY created_at DESC
                LIMIT $1
                """,
                RECENT_LIMIT,
            )
            recent_products = await conn.fetch(
                """
                SELECT p.id, p.title, p.price, p.images, p.is_verified, p.created_at,
                       c.name AS category_name,
                       u.first_name AS publisher_first_name,
                       u.last_name AS publisher_last_name
                FROM products p
                LEFT JOIN categories c ON c.id = p.category_id
                LEFT JOIN users u ON u.id = p.publisher_id
                ORDER BY p.created_at DESC
                LIMIT $1
                """,
                RECENT_LIMIT,
            )
            per_category = await conn.fetch(
                """
                SELECT c.id, c.name, COUNT(p.id) AS count
                FROM categories c
                JOIN products p ON p.category_id = c.id
                GROUP BY c.id, c.name
                ORDER BY count DESC
                """
            )

        logger.debug("admin_stats_collected", total_users=totals["total_users"])

        return {
            "totalUsers": totals["total_users"],
            "totalProducts": totals["total_products"],
            "totalCategories": totals["total_categories"],
            "totalAds": totals["total_ads"],
            "verifiedListings": totals["verified_listings"],
            "pendingListings": totals["pending_listings"],
            "recentUsers": [
                {
                    "id": str(r["id"]),
                    "firstName": r["first_name"],
                    "lastName": r["last_name"],
                    "email": r["email"],
                    "role": r["role"],
                    "createdAt": r["created_at"].isoformat(),
                }
                for r in recent_users
            ],
            "recentProducts": [
                {
                    "id": str(r["id"]),
                    "title": r["title"],
                    "price": float(r["price"]),
                    "images": list(r["images"] or []),
                    "isVerified": r["is_verified"],
                    "category": r["category_name"],
                    "publisher": (
                        f"{r['publisher_first_name']} {r['publisher_last_name']}"
                        if r["publisher_first_name"] is not None
                        else None
                    ),
                    "createdAt": r["created_at"].isoformat(),
                }
                for r in recent_products
            ],
            "productsPerCategory": [
                {"id": str(r["id"]), "name": r["name"], "count": r["count"]}
                for r in per_category
            ],
        }
