"""
Async SQLAlchemy plumbing for the audit store.

One engine per process, created at import from DATABASE_URL. Each audit
write opens its own short session from `async_session` so writes commit
independently of one another.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from .config import settings


class Base(DeclarativeBase):
    """Declarative base for the weather_queries and weather_snapshots tables."""
    pass


def engine_options(url: str) -> dict:
    """Pool settings for a database URL. SQLite keeps its default single-connection pool."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **engine_options(settings.DATABASE_URL),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables() -> None:
    """Create any missing audit tables."""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()


async def get_session():
    """Yield a session for the duration of one request."""
    async with async_session() as session:
        yield session
