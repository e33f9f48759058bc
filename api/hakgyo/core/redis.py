# ruff: noqa: PLW0603
"""Redis connection management.

Redis is optional. When it is available it backs:
- the XP leaderboard (sorted set)
- per-user locks around gamification updates
- short-lived kelas progress caches
"""

from uuid import UUID

import redis.asyncio as redis

from hakgyo.config import get_settings
from hakgyo.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    """Get Redis client instance (None when running without Redis)."""
    return _redis_client


# Key naming
def leaderboard_key() -> str:
    """Sorted set of user ids scored by total XP."""
    return "gamification:leaderboard:xp"


def user_lock_key(user_id: UUID | str) -> str:
    """Lock serializing gamification updates for one user."""
    return f"locks:gamification:user:{user_id}"


def kelas_progress_key(user_id: UUID | str, kelas_id: UUID | str) -> str:
    """Cached progress payload of one learner in one kelas."""
    return f"progress:kelas:{kelas_id}:user:{user_id}"


def kelas_progress_pattern(kelas_id: UUID | str) -> str:
    """Match the cached progress payloads of every learner in one kelas."""
    return f"progress:kelas:{kelas_id}:user:*"
