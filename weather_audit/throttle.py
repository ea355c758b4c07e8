"""
Redis-backed sliding window request throttle.

Every client gets THROTTLE_LIMIT requests per THROTTLE_WINDOW_SECONDS
(10 per 5 s by default). A client is the gateway-supplied user id when
present, otherwise the caller's IP address.

Like the weather cache, the throttle degrades open: with no Redis client,
or when Redis errors or stalls, requests are let through.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from typing import Callable, Optional

from fastapi import Request

logger = logging.getLogger(__name__)

KEY_PREFIX = "throttle:"

# Paths that are never throttled
EXEMPT_PATHS = ("/health",)


def client_key(request: Request) -> str:
    """Identify the caller for throttling purposes."""
    user_id = request.headers.get("x-user-id", "").strip()
    if user_id:
        return f"user:{user_id}"
    client_ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return f"ip:{client_ip}"


class RequestThrottle:
    """Sliding window counter kept in a Redis sorted set per client."""

    def __init__(
        self,
        redis,
        limit: int = 10,
        window_seconds: float = 5.0,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self.limit = limit
        self.window_seconds = window_seconds
        self.timeout = timeout
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def hit(self, client: str) -> Optional[int]:
        """
        Count one request for client.

        Returns:
            None when the request is allowed, otherwise the number of
            seconds the client should wait before retrying
        """
        if self._redis is None:
            return None

        try:
            if self.timeout is None:
                seen = await self._record(client)
            else:
                seen = await asyncio.wait_for(self._record(client), self.timeout)
        except Exception:
            logger.warning("Throttle check failed for %s, letting request through", client, exc_info=True)
            return None

        if seen < self.limit:
            return None
        logger.info("Throttled %s after %d requests in %.0fs", client, seen, self.window_seconds)
        return max(1, math.ceil(self.window_seconds))

    async def _record(self, client: str) -> int:
        key = f"{KEY_PREFIX}{client}"
        now = self._clock()

        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(key, 0, now - self.window_seconds)
        pipe.zcard(key)
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
        pipe.expire(key, max(1, math.ceil(self.window_seconds * 2)))
        results = await pipe.execute()
        return results[1]
