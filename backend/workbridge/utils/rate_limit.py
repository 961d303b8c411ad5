"""Sliding-window rate limiters for upload attempts.

Two interchangeable backends share the `check(key, limit, window)`
signature:

- `InMemoryRateLimiter`: process-local, the default. Good enough for a
  single worker process.
- `RedisRateLimiter`: sorted-set sliding window shared across processes.
  Fails open when Redis is unreachable.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Optional, Protocol

import redis.asyncio as redis

from workbridge.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class RateLimiter(Protocol):
    async def check(self, key: str, limit: int, window: int) -> bool:
        ...


class InMemoryRateLimiter:
    """Attempt timestamps per key, pruned to the trailing window on each check."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._attempts: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str, limit: int = 5, window: int = 60) -> bool:
        """Record an attempt for `key`.

        Returns:
            True if allowed, False if `limit` attempts already happened
            within the last `window` seconds
        """
        async with self._lock:
            now = self._clock()
            attempts = self._attempts.setdefault(key, deque())
            while attempts and attempts[0] <= now - window:
                attempts.popleft()

            if len(attempts) >= limit:
                return False

            attempts.append(now)
            return True

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(key, None)


class RedisRateLimiter:
    def __init__(self, client_factory: Callable = get_redis):
        self._client_factory = client_factory

    async def check(self, key: str, limit: int = 5, window: int = 60) -> bool:
        """Check if rate limit is exceeded.

        Args:
            key: Unique identifier (e.g., "upload-<onboarding id>")
            limit: Maximum attempts allowed
            window: Time window in seconds

        Returns:
            True if allowed, False if rate limit exceeded
        """
        redis_client = await self._client_factory()
        current_time = time.time()
        window_start = current_time - window
        redis_key = f"ratelimit:{key}"

        try:
            await redis_client.zremrangebyscore(redis_key, 0, window_start)
            count = await redis_client.zcard(redis_key)

            if count >= limit:
                return False

            await redis_client.zadd(redis_key, {str(current_time): current_time})
            await redis_client.expire(redis_key, window)

            return True

        except redis.RedisError as e:
            # If Redis fails, allow the attempt (fail open)
            logger.error(f"Rate limit check failed: {e}")
            return True


def build_rate_limiter(backend: str | None = None) -> RateLimiter:
    backend = backend or settings.upload_rate_limit_backend
    if backend == "redis":
        return RedisRateLimiter()
    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {backend}")
    return InMemoryRateLimiter()
