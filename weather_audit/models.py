"""
SQLAlchemy database models.

Defines the append-only audit trail: one row per weather lookup plus an
optional snapshot of the conditions that were returned.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .db import Base


class WeatherQuery(Base):
    """
    One weather lookup made by a user.

    owner_id comes from the identity provider; users are not stored here.
    city_label is the display form "<city>, <country>".
    """
    __tablename__ = "weather_queries"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    city_label = Column(String, nullable=False)
    query_time = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        index=True,
    )

    snapshot = relationship(
        "WeatherSnapshot",
        back_populates="query",
        uselist=False,
        lazy="selectin",
    )


class WeatherSnapshot(Base):
    """
    Conditions returned for a lookup.

    Unique on query_id: a query has zero or one snapshot.
    """
    __tablename__ = "weather_snapshots"

    id = Column(Integer, primary_key=True)
    query_id = Column(Integer, ForeignKey("weather_queries.id"), nullable=False, unique=True)
    main = Column(String, nullable=False)  # e.g. Clear, Rain
    description = Column(String, nullable=False)
    icon = Column(String, nullable=False)
    temperature = Column(Float, nullable=False)
    feels_like = Column(Float, nullable=False)
    humidity = Column(Integer, nullable=False)
    temp_max = Column(Float, nullable=False)
    temp_min = Column(Float, nullable=False)

    query = relationship("WeatherQuery", back_populates="snapshot")
