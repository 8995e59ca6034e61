"""Sliding-window rate limiter for API endpoints, backed by Redis sorted sets."""

import math
import time
from typing import Any
from uuid import uuid4

from interviewmate.core.errors import RateLimitError
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "ratelimit"


class SlidingWindowRateLimiter:
    """
    Sliding-window log limiter.

    Each identifier keeps a sorted set of request timestamps; requests older
    than the window are trimmed before counting. Trim, count and add run in
    one MULTI/EXEC so concurrent requests cannot all pass on the same count.
    A rejected request is removed again. Shared across instances through Redis.
    """

    def __init__(self, redis_client: Any, limit: int = 10, window_seconds: float = 3.0):
        """
        Initialize rate limiter.

        Args:
            redis_client: redis.asyncio client
            limit: Requests allowed within any window
            window_seconds: Window length in seconds
        """
        self._redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds

    def _key(self, identifier: str) -> str:
        return f"{KEY_PREFIX}:{identifier}"

    async def check(self, identifier: str) -> int:
        """
        Record a request for `identifier` if the window has room.

        Args:
            identifier: Rate limit key, e.g. "chat:<user id>"

        Returns:
            Requests remaining in the current window

        Raises:
            RateLimitError: 429 if the window is full or the limiter is unreachable
        """
        key = self._key(identifier)
        member = uuid4().hex
        now_ms = time.time() * 1000
        window_ms = self.window_seconds * 1000

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now_ms - window_ms)
                pipe.zcard(key)
                pipe.zadd(key, {member: now_ms})
                pipe.pexpire(key, int(window_ms))
                _, count, _, _ = await pipe.execute()
            count = int(count)

            if count >= self.limit:
                await self._redis.zrem(key, member)
                oldest = await self._redis.zrange(key, 0, 0, withscores=True)
                retry_after = 1
                if oldest:
                    retry_after = max(1, math.ceil((oldest[0][1] + window_ms - now_ms) / 1000))
                logger.warning(
                    f"Rate limit exceeded for key: {identifier}, "
                    f"requests: {count}/{self.limit}, retry after: {retry_after}s"
                )
                raise RateLimitError(
                    "Too many requests. Slow down a bit.", retry_after=retry_after
                )

            return self.limit - count - 1

        except RateLimitError:
            raise
        except Exception as e:
            # Fail closed: an unreachable limiter rejects the request
            logger.error(f"Rate limit check failed for key {identifier}: {e}")
            raise RateLimitError("Rate limit exceeded") from e
