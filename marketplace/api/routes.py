"""Root and health endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root() -> dict:
    return {"success": True, "message": "Welcome to the Marketplace API"}


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format and database state
    """
    from marketplace.database import health_check as db_health_check

    db_healthy = await db_health_check()

    return {
        "success": db_healthy,
        "status": "healthy" if db_healthy else "degraded",
        "database": "healthy" if db_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
