"""
Weather lookup pipeline.

cache check -> (miss) geocode -> fetch -> cache write -> audit write

Only geocoding and provider failures reach the caller. Cache and audit
writes are best-effort: a broken Redis or database never fails a lookup
that already has its weather data.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

from .audit import AuditRepository
from .cache import WeatherCache, cache_key
from .schemas import WeatherReport
from .weather import GeocodingClient, WeatherProviderClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Result of a best-effort operation."""
    ok: bool
    value: Any = None


async def attempt(action: str, operation: Awaitable[Any]) -> Outcome:
    """
    Await an operation whose failure must not reach the caller.

    Failures are logged with traceback and reported as Outcome(ok=False).
    """
    try:
        return Outcome(True, await operation)
    except Exception:
        logger.warning("Best-effort %s failed", action, exc_info=True)
        return Outcome(False)


def city_label(city: str, country: str) -> str:
    """Display form stored with each query: "<city>, <country>"."""
    return f"{city.strip()}, {country.strip()}"


class WeatherLookupService:
    """
    Resolves (city, country) to current weather for a caller.

    Usage:
        service = WeatherLookupService(cache, geocoder, provider, audit)
        report = await service.lookup("Izmir", "TR", caller_id=7)
    """

    def __init__(
        self,
        cache: WeatherCache,
        geocoder: GeocodingClient,
        provider: WeatherProviderClient,
        audit: AuditRepository,
        ttl_seconds: Optional[int] = None,
    ):
        self._cache = cache
        self._geocoder = geocoder
        self._provider = provider
        self._audit = audit
        self._ttl_seconds = ttl_seconds

    async def lookup(self, city: str, country: str, caller_id: int) -> WeatherReport:
        """
        Current weather for a place, from cache when fresh.

        Raises:
            NotFound: the place could not be geocoded
            WeatherServiceError: other classified provider failures
        """
        key = cache_key(city, country)
        label = city_label(city, country)

        report = await self._cache.get(key)
        if report is not None:
            logger.info("Serving cached weather for %r to user %d", label, caller_id)
            await self._record(caller_id, label, report)
            return report

        location = await self._geocoder.resolve(city, country)
        logger.debug("Geocoded %r to lat=%s lon=%s", label, location.lat, location.lon)

        report = await self._provider.fetch(location.lat, location.lon)

        await self._cache.set(key, report, self._ttl_seconds)
        await self._record(caller_id, label, report)
        logger.info("Fetched weather for %r for user %d", label, caller_id)
        return report

    async def _record(self, owner_id: int, label: str, report: WeatherReport) -> None:
        """Write the audit trail for one lookup. Never raises."""
        created = await attempt("audit query insert", self._audit.create_query(owner_id, label))
        if not created.ok:
            return
        stored = await attempt(
            "audit snapshot insert",
            self._audit.attach_snapshot(created.value, report.to_snapshot()),
        )
        if not stored.ok:
            logger.info("Weather query %d stored without snapshot", created.value)
