"""
Test configuration and fixtures.

No external services are needed: SQLite runs in memory, Redis is a
dict-backed fake with a controllable clock and OpenWeatherMap is served
by an httpx.MockTransport.
"""
import asyncio
import fnmatch

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from weather_audit.audit import AuditRepository
from weather_audit.cache import WeatherCache
from weather_audit.db import Base, get_session
from weather_audit.main import (
    app,
    get_audit_repository,
    get_geocoding_client,
    get_weather_cache,
    get_weather_provider,
)
from weather_audit.service import WeatherLookupService
from weather_audit.throttle import RequestThrottle
from weather_audit.weather import GeocodingClient, WeatherProviderClient

# Use in-memory async SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

GEOCODING_URL = "https://geo.test/geo/1.0/direct"
WEATHER_URL = "https://weather.test/data/2.5/weather"

USER_7 = {"X-User-Id": "7", "X-User-Role": "user"}
USER_9 = {"X-User-Id": "9", "X-User-Role": "user"}
ADMIN = {"X-User-Id": "1", "X-User-Role": "admin"}


# ---------------------------------------------------------------------------
# Provider payload factories
# ---------------------------------------------------------------------------

def make_geocode(lat=38.42, lon=27.14, name="Izmir", country="TR"):
    return [{"name": name, "lat": lat, "lon": lon, "country": country, "local_names": {}}]


def make_weather(temp=25.5, feels_like=26.7, main="Clear", description="clear sky", icon="01d", location_id=311046):
    return {
        "coord": {"lon": 27.14, "lat": 38.42},
        "weather": [{"id": 800, "main": main, "description": description, "icon": icon}],
        "main": {
            "temp": temp,
            "feels_like": feels_like,
            "temp_min": temp - 2.0,
            "temp_max": temp + 2.5,
            "pressure": 1013,
            "humidity": 48,
        },
        "id": location_id,
        "name": "Izmir",
        "cod": 200,
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeRedis:
    """
    Minimal dict-backed Redis fake implementing the operations used by
    WeatherCache (get, set(ex=), delete, scan_iter, ping) and the sorted-set
    pipeline used by RequestThrottle.

    Expiry is evaluated against `now`, which tests advance by hand.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._store: dict[str, str] = {}
        self._expires_at: dict[str, float] = {}
        self.zsets: dict[str, dict[str, float]] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _expire(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self.now >= deadline:
            self._store.pop(key, None)
            self._expires_at.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._store[key] = value
        if ex is not None:
            self._expires_at[key] = self.now + ex
        else:
            self._expires_at.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            self._expires_at.pop(key, None)
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self._store):
            self._expire(key)
            if key in self._store and fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    def keys(self) -> list[str]:
        return sorted(self._store)

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    """Queues sorted-set commands and applies them on execute()."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._commands = []

    def _zset(self, key: str) -> dict[str, float]:
        return self._redis.zsets.setdefault(key, {})

    def zremrangebyscore(self, key, low, high):
        def run():
            zset = self._zset(key)
            stale = [m for m, score in zset.items() if low <= score <= high]
            for member in stale:
                del zset[member]
            return len(stale)
        self._commands.append(run)
        return self

    def zcard(self, key):
        self._commands.append(lambda: len(self._zset(key)))
        return self

    def zadd(self, key, mapping):
        def run():
            zset = self._zset(key)
            added = len(set(mapping) - set(zset))
            zset.update(mapping)
            return added
        self._commands.append(run)
        return self

    def expire(self, key, seconds):
        self._commands.append(lambda: True)
        return self

    async def execute(self) -> list:
        results = [command() for command in self._commands]
        self._commands = []
        return results


class StalledRedis:
    """A Redis that accepts every command and never answers."""

    async def _hang(self, *args, **kwargs):
        await asyncio.Event().wait()

    get = set = delete = ping = _hang

    async def scan_iter(self, match: str = "*"):
        await asyncio.Event().wait()
        yield match

    def pipeline(self):
        return self

    def zremrangebyscore(self, *args):
        return self

    zcard = zadd = expire = zremrangebyscore
    execute = _hang


class FakeOpenWeather:
    """
    Stands in for both OpenWeatherMap endpoints.

    `calls` records the endpoint hit by each request ("geocode" or "weather")
    in order. Each response is a (status, json) pair, an exception to raise,
    or a callable taking the request.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []
        self.geocode_response = (200, make_geocode())
        self.weather_response = (200, make_weather())

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "geo.test":
            self.calls.append("geocode")
            return self._respond(self.geocode_response, request)
        self.calls.append("weather")
        return self._respond(self.weather_response, request)

    @staticmethod
    def _respond(response, request):
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        status, payload = response
        return httpx.Response(status, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def audit_repo(session_factory) -> AuditRepository:
    return AuditRepository(session_factory)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def weather_cache(fake_redis) -> WeatherCache:
    return WeatherCache(fake_redis, ttl_seconds=300)


@pytest.fixture
def open_weather() -> FakeOpenWeather:
    return FakeOpenWeather()


@pytest.fixture
def geocoder(open_weather) -> GeocodingClient:
    return GeocodingClient(GEOCODING_URL, "test-key", transport=open_weather.transport)


@pytest.fixture
def provider(open_weather) -> WeatherProviderClient:
    return WeatherProviderClient(WEATHER_URL, "test-key", transport=open_weather.transport)


@pytest.fixture
def lookup_service(weather_cache, geocoder, provider, audit_repo) -> WeatherLookupService:
    return WeatherLookupService(weather_cache, geocoder, provider, audit_repo, ttl_seconds=300)


@pytest.fixture
def throttle(fake_redis) -> RequestThrottle:
    return RequestThrottle(fake_redis, limit=10, window_seconds=5, clock=lambda: fake_redis.now)


@pytest_asyncio.fixture
async def client(session_factory, weather_cache, geocoder, provider, throttle):
    """API client with every external dependency replaced by a fake."""
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_audit_repository] = lambda: AuditRepository(session_factory)
    app.dependency_overrides[get_weather_cache] = lambda: weather_cache
    app.dependency_overrides[get_geocoding_client] = lambda: geocoder
    app.dependency_overrides[get_weather_provider] = lambda: provider

    app.state.throttle = throttle

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.throttle = None


