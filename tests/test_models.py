"""
Unit tests for database models.
"""
from weather_audit.db import engine_options
from weather_audit.models import WeatherQuery, WeatherSnapshot


def test_weather_query_model():
    """Test WeatherQuery model attributes."""
    query = WeatherQuery(
        owner_id=7,
        city_label="Izmir, TR"
    )

    assert query.owner_id == 7
    assert query.city_label == "Izmir, TR"


def test_weather_snapshot_model():
    """Test WeatherSnapshot model attributes."""
    snapshot = WeatherSnapshot(
        query_id=1,
        main="Clear",
        description="clear sky",
        icon="01d",
        temperature=25.5,
        feels_like=26.7,
        humidity=48,
        temp_max=28.0,
        temp_min=23.5,
    )

    assert snapshot.main == "Clear"
    assert snapshot.temperature == 25.5
    assert snapshot.humidity == 48


def test_snapshot_is_unique_per_query():
    """Test that a query can carry at most one snapshot."""
    assert WeatherSnapshot.__table__.c.query_id.unique is True
    assert WeatherQuery.snapshot.property.uselist is False


def test_queries_indexed_by_owner():
    """Test that history reads by owner hit an index."""
    assert WeatherQuery.__table__.c.owner_id.index is True


def test_pool_sizing_only_for_server_databases():
    """Test SQLite keeps its default pool while server URLs get sizing."""
    assert engine_options("sqlite+aiosqlite:///./weather.db") == {}
    assert engine_options("postgresql+asyncpg://db/weather")["pool_size"] == 5
