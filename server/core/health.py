"""Health check utilities for the /health endpoint."""
import time
from typing import Dict, Any, TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.cache import CacheService

logger = get_logger(__name__)

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_database(database: "Database") -> bool:
    """Check database connectivity."""
    try:
        async with database.get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed", error=str(e))
        return False


async def check_cache(cache: "CacheService") -> bool:
    """Round-trip a health-check key through the cache.

    CacheService fails open, so a broken backend shows up as a miss.
    """
    test_key = "_health_check"
    await cache.set(test_key, "ok", ttl=10, source="health")
    result = await cache.get(test_key)
    await cache.delete(test_key)
    return result == "ok"


async def get_health_status(
    database: "Database",
    cache: "CacheService",
    settings: "Settings",
    jobs: int = 0,
) -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Returns:
        Dict containing status, uptime, backend checks and feature flags.
    """
    db_healthy = await check_database(database)
    cache_healthy = await check_cache(cache)

    overall_status = "healthy" if (db_healthy and cache_healthy) else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
            "cache": cache_healthy,
        },
        "features": {
            "redis": cache.is_redis_available(),
            "scheduler": settings.scheduler_enabled,
        },
        "scheduled_jobs": jobs,
    }
