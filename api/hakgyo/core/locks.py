"""Per-key locking for read-modify-write cycles.

With Redis configured the lock is a Redis lock, so it holds across API
instances. Without Redis each key gets its own ``asyncio.Lock``, which only
serializes callers inside this process.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from redis.exceptions import LockError


if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class LockTimeoutError(Exception):
    """The lock could not be acquired in time."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Timed out waiting for lock {key}")


class KeyedLock:
    """Mutual exclusion scoped to a string key."""

    def __init__(self, redis: "Redis | None" = None, timeout: float = 10.0):
        self.redis = redis
        self.timeout = timeout
        self._local: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        if self.redis:
            async with self._hold_redis(key):
                yield
        else:
            async with self._hold_local(key):
                yield

    @asynccontextmanager
    async def _hold_redis(self, key: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            key, timeout=self.timeout, blocking_timeout=self.timeout
        )
        if not await lock.acquire():
            raise LockTimeoutError(key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the next holder already owns it
                logger.warning("redis_lock_release_failed", key=key)

    @asynccontextmanager
    async def _hold_local(self, key: str) -> AsyncIterator[None]:
        lock = self._local.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            except TimeoutError as e:
                raise LockTimeoutError(key) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._local[key]

    def active_keys(self) -> set[str]:
        """Keys with a holder or waiter in this process."""
        return set(self._local)
