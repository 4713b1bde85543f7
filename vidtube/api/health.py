"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from vidtube.database import health_check as db_health_check

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, ISO8601 timestamp and database health
    """
    db_healthy = await db_health_check()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unhealthy",
    }
