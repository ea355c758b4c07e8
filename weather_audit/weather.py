"""
OpenWeatherMap clients.

Two dependent calls resolve a place to current conditions: the geocoding
endpoint turns (city, country) into coordinates, then the current-weather
endpoint is queried with those coordinates. Both calls share a timeout, a
redirect limit and a concurrency cap. Provider failures are classified into
the error taxonomy here and nowhere else.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .config import settings
from .errors import InternalError, NotFound, classify_status
from .schemas import GeocodeResult, WeatherReport

logger = logging.getLogger(__name__)

# Semaphore to limit concurrent API requests (prevents rate limiting)
_SEM: asyncio.Semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_WEATHER_REQUESTS)


class OpenWeatherClient:
    """
    Shared request plumbing for OpenWeatherMap endpoints.

    Args:
        url: Endpoint URL
        api_key: OpenWeatherMap API key (sent as `appid`)
        timeout: Request timeout in seconds
        max_redirects: Redirects followed before giving up
        transport: Optional httpx transport, used by tests to mock the provider
    """

    name = "openweather"

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = settings.WEATHER_API_TIMEOUT,
        max_redirects: int = settings.WEATHER_API_MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport

    async def _get_json(self, params: Dict[str, Any]) -> Any:
        """
        Perform a GET and return the decoded JSON body.

        Raises:
            WeatherServiceError: classified provider failure
        """
        params = {**params, "appid": self.api_key}
        try:
            async with _SEM:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=True,
                    max_redirects=self.max_redirects,
                    transport=self._transport,
                ) as client:
                    r = await client.get(self.url, params=params)
        except httpx.TimeoutException:
            logger.warning("%s request timed out after %.1fs", self.name, self.timeout)
            raise InternalError("Weather provider request timed out")
        except httpx.RequestError as e:
            logger.warning("%s request failed: %s", self.name, e.__class__.__name__)
            raise InternalError("Weather provider could not be reached")

        if r.is_error:
            logger.warning(
                "%s returned %d: %s",
                self.name,
                r.status_code,
                r.text[:200],
            )
            raise classify_status(r.status_code)

        try:
            return r.json()
        except ValueError:
            logger.warning("%s returned a non-JSON body", self.name)
            raise InternalError("Weather provider returned an invalid response")


class GeocodingClient(OpenWeatherClient):
    """Resolves a city and country to coordinates."""

    name = "geocoding"

    async def resolve(self, city: str, country: str) -> GeocodeResult:
        """
        Look up the best match for a place.

        Args:
            city: City name as typed by the user
            country: Country name or ISO code

        Returns:
            The first geocoding match

        Raises:
            NotFound: the provider knows no such place
            WeatherServiceError: any other classified provider failure
        """
        payload = await self._get_json({"q": f"{city},{country}", "limit": 1})
        if not payload:
            raise NotFound()
        if not isinstance(payload, list):
            logger.warning("geocoding returned unexpected payload type %s", type(payload).__name__)
            raise InternalError("Weather provider returned an invalid response")

        try:
            return GeocodeResult.model_validate(payload[0])
        except ValidationError:
            logger.warning("geocoding payload failed validation", exc_info=True)
            raise InternalError("Weather provider returned an invalid response")


class WeatherProviderClient(OpenWeatherClient):
    """Fetches current conditions for coordinates, in metric units."""

    name = "weather"

    async def fetch(self, lat: float, lon: float) -> WeatherReport:
        """
        Fetch current weather for coordinates.

        Args:
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees

        Returns:
            Decoded weather report

        Raises:
            WeatherServiceError: classified provider failure
        """
        payload = await self._get_json({"lat": lat, "lon": lon, "units": "metric"})
        try:
            return WeatherReport.model_validate(payload)
        except ValidationError:
            logger.warning("weather payload failed validation", exc_info=True)
            raise InternalError("Weather provider returned an invalid response")
