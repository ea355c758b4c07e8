"""
Pydantic schemas.

Provider payloads are decoded here at the client boundary, and the API
response shapes are declared here for FastAPI.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------- Provider payloads ----------

class GeocodeResult(BaseModel):
    """One match from the geocoding endpoint."""
    model_config = ConfigDict(extra="ignore")

    lat: float
    lon: float
    name: str
    country: str


class Condition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    main: str
    description: str
    icon: str


class Readings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    temp: float
    feels_like: float
    temp_min: float
    temp_max: float
    humidity: int


class WeatherReport(BaseModel):
    """
    Current conditions for a location.

    Decoded from the provider's current-weather payload, cached as-is and
    returned by GET /weather. `id` is the provider's location id.
    """
    model_config = ConfigDict(extra="ignore")

    weather: List[Condition] = Field(min_length=1)
    main: Readings
    id: int

    def to_snapshot(self) -> "SnapshotData":
        primary = self.weather[0]
        return SnapshotData(
            main=primary.main,
            description=primary.description,
            icon=primary.icon,
            temperature=self.main.temp,
            feels_like=self.main.feels_like,
            humidity=self.main.humidity,
            temp_max=self.main.temp_max,
            temp_min=self.main.temp_min,
        )


# ---------- History ----------

class SortBy(str, Enum):
    queryTime = "queryTime"
    city = "city"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SnapshotData(CamelModel):
    main: str
    description: str
    icon: str
    temperature: float
    feels_like: float
    humidity: int
    temp_max: float
    temp_min: float


class HistoryItem(CamelModel):
    id: int  # owner id
    query_id: int
    city: str
    query_time: datetime
    weather_data: Optional[SnapshotData] = None


class HistoryPage(CamelModel):
    queries: List[HistoryItem]
    total: int


# ---------- Errors ----------

class ErrorResponse(CamelModel):
    status_code: int
    timestamp: datetime
    method: str
    error: str
    message: str
