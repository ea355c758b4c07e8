"""
Weather cache, Redis-backed and keyed per (city, country).

Key format:  weather:{city}_{country}
TTL:         WEATHER_CACHE_TTL seconds (300 by default)

Normalisation lower-cases, trims and collapses whitespace runs to "_":
  ("Istanbul", "TR")     ->  "weather:istanbul_tr"
  (" New  York ", "us")  ->  "weather:new_york_us"

The cache is never allowed to break a lookup. Read errors are misses,
write errors are logged, and a Redis that stops answering counts as an
error once `timeout` seconds pass. Only the administrative clear() raises.
"""
from __future__ import annotations

import asyncio
import logging
import re

from pydantic import ValidationError

from .schemas import WeatherReport

logger = logging.getLogger(__name__)

KEY_PREFIX = "weather:"

_WHITESPACE = re.compile(r"\s+")


def _normalise(part: str) -> str:
    return _WHITESPACE.sub("_", part.strip().lower())


def cache_key(city: str, country: str) -> str:
    """Build the canonical cache key for a city and country."""
    return f"{KEY_PREFIX}{_normalise(city)}_{_normalise(country)}"


class WeatherCache:
    """
    Cache-aside store for weather reports.

    Usage:
        cache = WeatherCache(redis_client, ttl_seconds=300)
        key = cache_key("Izmir", "TR")
        report = await cache.get(key)
        if report is None:
            report = await fetch_from_provider(...)
            await cache.set(key, report)
    """

    def __init__(self, redis, ttl_seconds: int = 300, timeout: float | None = None) -> None:
        """
        Args:
            redis: An async Redis client (redis.asyncio compatible).
                   May be None, in which case every read is a miss.
            ttl_seconds: Default lifetime for entries written by set().
            timeout: Upper bound in seconds on each Redis round trip.
                     None waits as long as the client does.
        """
        self._redis = redis
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    async def _call(self, command):
        if self.timeout is None:
            return await command
        return await asyncio.wait_for(command, self.timeout)

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> WeatherReport | None:
        """Return the cached report for key, or None on miss / unavailable."""
        if self._redis is None:
            return None

        try:
            raw = await self._call(self._redis.get(key))
        except Exception:
            logger.warning("Weather cache GET failed for key=%s", key, exc_info=True)
            return None

        if raw is None:
            logger.debug("Weather cache miss: %s", key)
            return None

        try:
            report = WeatherReport.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding undecodable weather cache entry: %s", key)
            return None

        logger.debug("Weather cache hit: %s", key)
        return report

    async def set(self, key: str, report: WeatherReport, ttl_seconds: int | None = None) -> None:
        """Write a report with a TTL. Failures are logged, never raised."""
        if self._redis is None:
            return

        ttl = ttl_seconds or self.ttl_seconds
        try:
            await self._call(self._redis.set(key, report.model_dump_json(), ex=ttl))
            logger.debug("Weather cached: key=%s ttl=%ds", key, ttl)
        except Exception:
            logger.warning("Weather cache SET failed for key=%s", key, exc_info=True)

    async def invalidate(self, key: str) -> None:
        """Evict one entry. Failures are logged, never raised."""
        if self._redis is None:
            return

        try:
            await self._call(self._redis.delete(key))
            logger.debug("Weather cache invalidated: %s", key)
        except Exception:
            logger.warning("Weather cache DELETE failed for key=%s", key, exc_info=True)

    async def clear(self) -> int:
        """
        Remove every weather entry. Administrative; errors propagate.

        Returns:
            Number of keys deleted
        """
        if self._redis is None:
            return 0

        keys = await self._call(self._weather_keys())
        if keys:
            await self._call(self._redis.delete(*keys))
        logger.warning("Weather cache cleared by admin operation (%d keys)", len(keys))
        return len(keys)

    async def ping(self) -> bool:
        """Report whether the backing store answers."""
        if self._redis is None:
            return False
        try:
            return bool(await self._call(self._redis.ping()))
        except Exception:
            logger.warning("Weather cache PING failed", exc_info=True)
            return False

    async def _weather_keys(self) -> list[str]:
        return [key async for key in self._redis.scan_iter(match=f"{KEY_PREFIX}*")]
