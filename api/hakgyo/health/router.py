"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError

from hakgyo.config import get_settings
from hakgyo.core.database import AsyncCassandraConnection
from hakgyo.core.logging import get_logger
from hakgyo.core.redis import get_redis


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except RedisError as e:
        logger.warning("redis_health_check_failed", error=str(e))
        return "unavailable"
    return "ok"


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness() -> ORJSONResponse:
    """Readiness probe - Cassandra must be connected, Redis is optional."""
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected()
    content: dict[str, Any] = {
        "status": "ready" if cassandra_ok else "not_ready",
        "environment": settings.environment,
        "cassandra": "ok" if cassandra_ok else "unavailable",
        "redis": await _redis_status(),
    }
    return ORJSONResponse(
        status_code=status.HTTP_200_OK
        if cassandra_ok
        else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content,
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
