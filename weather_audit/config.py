from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    DATABASE_URL: str = "sqlite+aiosqlite:///./weather.db"

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Empty disables the cache: every read is a miss.
    REDIS_URL: str = "redis://localhost:6379/0"
    WEATHER_CACHE_TTL: int = 300
    # Bounds every Redis round trip so a stalled server cannot hold a request.
    REDIS_SOCKET_TIMEOUT: float = 2.0

    OPENWEATHER_API_KEY: str = ""
    OPENWEATHER_GEOCODING_URL: str = "http://api.openweathermap.org/geo/1.0/direct"
    OPENWEATHER_WEATHER_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    WEATHER_API_TIMEOUT: float = 5.0
    WEATHER_API_MAX_REDIRECTS: int = 3

    MAX_CONCURRENT_WEATHER_REQUESTS: int = 10

    HISTORY_DEFAULT_LIMIT: int = 20
    HISTORY_MAX_LIMIT: int = 100

    # Requests allowed per client within a sliding window
    THROTTLE_LIMIT: int = 10
    THROTTLE_WINDOW_SECONDS: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
