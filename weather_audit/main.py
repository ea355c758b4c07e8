from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

import redis.asyncio as aioredis

from .audit import AuditRepository
from .cache import WeatherCache, cache_key
from .config import settings
from .db import async_session, create_tables, dispose_engine, get_session
from .errors import BadRequest, WeatherServiceError
from .history import HistoryQueryService
from .identity import Caller, get_caller, require_admin
from .schemas import ErrorResponse, HistoryPage, SortBy, SortOrder, WeatherReport
from .service import WeatherLookupService
from .throttle import EXEMPT_PATHS, RequestThrottle, client_key
from .weather import GeocodingClient, WeatherProviderClient

from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional
import datetime
import logging
import time

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()

    redis_client = None
    if settings.REDIS_URL:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        try:
            await redis_client.ping()
            logger.info("Redis cache connection established")
        except Exception:
            # Reads degrade to misses until Redis comes back
            logger.warning("Redis unreachable at startup, weather cache operating in fallback mode")
    else:
        logger.info("REDIS_URL not set, weather cache disabled")

    app.state.weather_cache = WeatherCache(
        redis_client,
        ttl_seconds=settings.WEATHER_CACHE_TTL,
        timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    app.state.throttle = RequestThrottle(
        redis_client,
        limit=settings.THROTTLE_LIMIT,
        window_seconds=settings.THROTTLE_WINDOW_SECONDS,
        timeout=settings.REDIS_SOCKET_TIMEOUT,
    )

    yield

    if redis_client is not None:
        await redis_client.aclose()
    await dispose_engine()


app = FastAPI(title="Weather Lookup & History", lifespan=lifespan)

ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 403, 404, 429, 500, 503)
}


# ---------- Error envelope ----------

def error_envelope(request: Request, status_code: int, message: str) -> JSONResponse:
    body = ErrorResponse(
        status_code=status_code,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
        method=request.method,
        error=HTTPStatus(status_code).phrase,
        message=message,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


@app.exception_handler(WeatherServiceError)
async def weather_error_handler(request: Request, exc: WeatherServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s - %d %s", request.method, request.url.path, exc.status_code, exc.message)
    else:
        logger.warning("%s %s - %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return error_envelope(request, int(exc.status_code), exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_envelope(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'request'}: {err['msg']}"
        for err in exc.errors()
    )
    return error_envelope(request, 400, message or "Invalid request")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("%s %s - unhandled error", request.method, request.url.path)
    return error_envelope(request, 500, "Internal server error")


@app.middleware("http")
async def throttle_requests(request: Request, call_next):
    throttle = getattr(request.app.state, "throttle", None)
    if throttle is None or request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    retry_after = await throttle.hit(client_key(request))
    if retry_after is not None:
        response = error_envelope(request, 429, "Too many requests, slow down")
        response.headers["Retry-After"] = str(retry_after)
        return response
    return await call_next(request)


# Registered last so it wraps the throttle and logs its rejections too
@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.error("%s %s - 500 - %.0fms", request.method, request.url.path, elapsed_ms)
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s - %d - %.0fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


# ---------- Dependencies ----------

def get_weather_cache(request: Request) -> WeatherCache:
    cache = getattr(request.app.state, "weather_cache", None)
    return cache if cache is not None else WeatherCache(None)

def get_audit_repository() -> AuditRepository:
    return AuditRepository(async_session)

def get_geocoding_client() -> GeocodingClient:
    return GeocodingClient(settings.OPENWEATHER_GEOCODING_URL, settings.OPENWEATHER_API_KEY)

def get_weather_provider() -> WeatherProviderClient:
    return WeatherProviderClient(settings.OPENWEATHER_WEATHER_URL, settings.OPENWEATHER_API_KEY)

def get_lookup_service(
    cache: WeatherCache = Depends(get_weather_cache),
    geocoder: GeocodingClient = Depends(get_geocoding_client),
    provider: WeatherProviderClient = Depends(get_weather_provider),
    audit: AuditRepository = Depends(get_audit_repository),
) -> WeatherLookupService:
    return WeatherLookupService(cache, geocoder, provider, audit, ttl_seconds=settings.WEATHER_CACHE_TTL)

def get_history_service(audit: AuditRepository = Depends(get_audit_repository)) -> HistoryQueryService:
    return HistoryQueryService(audit)


# ---------- Weather ----------

@app.get("/weather", response_model=WeatherReport, responses=ERROR_RESPONSES)
async def get_weather(
    city: str = Query(..., min_length=1),
    country: str = Query(..., min_length=1),
    caller: Caller = Depends(get_caller),
    service: WeatherLookupService = Depends(get_lookup_service),
):
    if not city.strip() or not country.strip():
        raise BadRequest("city and country must not be blank")
    logger.info("Weather request from user %d for %s, %s", caller.id, city, country)
    return await service.lookup(city, country, caller.id)


# ---------- History ----------

@app.get("/weather/history", response_model=HistoryPage, responses=ERROR_RESPONSES)
async def my_history(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort_by: Optional[SortBy] = Query(None, alias="sortBy"),
    sort_order: Optional[SortOrder] = Query(None, alias="sortOrder"),
    city: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    history: HistoryQueryService = Depends(get_history_service),
):
    return await history.list(caller.id, page, limit, sort_by, sort_order, city)

@app.get("/weather/history/user/{user_id}", response_model=HistoryPage, responses=ERROR_RESPONSES)
async def user_history(
    user_id: int,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort_by: Optional[SortBy] = Query(None, alias="sortBy"),
    sort_order: Optional[SortOrder] = Query(None, alias="sortOrder"),
    city: Optional[str] = None,
    admin: Caller = Depends(require_admin),
    history: HistoryQueryService = Depends(get_history_service),
):
    logger.info("Admin %d reading weather history of user %d", admin.id, user_id)
    return await history.list(user_id, page, limit, sort_by, sort_order, city)


# ---------- Cache administration ----------

@app.delete("/weather/cache", status_code=204, responses=ERROR_RESPONSES)
async def clear_cache(
    admin: Caller = Depends(require_admin),
    cache: WeatherCache = Depends(get_weather_cache),
):
    removed = await cache.clear()
    logger.info("Admin %d cleared %d weather cache entries", admin.id, removed)
    return Response(status_code=204)

@app.delete("/weather/cache/entry", status_code=204, responses=ERROR_RESPONSES)
async def invalidate_cache_entry(
    city: str = Query(..., min_length=1),
    country: str = Query(..., min_length=1),
    admin: Caller = Depends(require_admin),
    cache: WeatherCache = Depends(get_weather_cache),
):
    key = cache_key(city, country)
    await cache.invalidate(key)
    logger.info("Admin %d invalidated weather cache entry %s", admin.id, key)
    return Response(status_code=204)


# ---------- Health ----------

@app.get("/health")
async def health(
    session: AsyncSession = Depends(get_session),
    cache: WeatherCache = Depends(get_weather_cache),
):
    try:
        await session.execute(text("SELECT 1"))
        database_ok = True
    except Exception:
        logger.warning("Health check database query failed", exc_info=True)
        database_ok = False

    return {
        "status": "ok" if database_ok else "degraded",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "database": database_ok,
        "cache": await cache.ping(),
    }
