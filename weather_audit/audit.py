"""
Audit trail persistence.

Every lookup writes a WeatherQuery row and, separately, a WeatherSnapshot
row. The two inserts run in their own transactions so a query survives a
failed snapshot write.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import WeatherQuery, WeatherSnapshot
from .schemas import SnapshotData, SortBy, SortOrder

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SortBy.queryTime: WeatherQuery.query_time,
    SortBy.city: WeatherQuery.city_label,
}


class AuditRepository:
    """
    Append-only store for weather lookups.

    Usage:
        repo = AuditRepository(async_session)
        query_id = await repo.create_query(7, "Izmir, TR")
        await repo.attach_snapshot(query_id, report.to_snapshot())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_query(self, owner_id: int, city_label: str) -> int:
        """Insert a query row and return its id."""
        async with self._session_factory() as session:
            query = WeatherQuery(owner_id=owner_id, city_label=city_label)
            session.add(query)
            await session.flush()
            query_id = query.id
            await session.commit()
        logger.debug("Recorded weather query id=%d owner=%d city=%r", query_id, owner_id, city_label)
        return query_id

    async def attach_snapshot(self, query_id: int, snapshot: SnapshotData) -> None:
        """Insert the snapshot for a query. A second snapshot violates the unique key."""
        async with self._session_factory() as session:
            await session.execute(
                insert(WeatherSnapshot).values(query_id=query_id, **snapshot.model_dump())
            )
            await session.commit()

    async def list_by_owner(
        self,
        owner_id: int,
        page: int,
        limit: int,
        sort_by: SortBy = SortBy.queryTime,
        sort_order: SortOrder = SortOrder.desc,
        city_filter: Optional[str] = None,
    ) -> Tuple[List[WeatherQuery], int]:
        """
        Page through one owner's queries.

        Args:
            owner_id: Whose queries to read
            page: 1-based page number
            limit: Page size
            sort_by: queryTime or city
            sort_order: asc or desc
            city_filter: Case-insensitive substring of the city label

        Returns:
            (queries with snapshots loaded, total matching rows)
        """
        conditions = [WeatherQuery.owner_id == owner_id]
        if city_filter:
            conditions.append(WeatherQuery.city_label.ilike(f"%{city_filter}%"))

        column = _SORT_COLUMNS[sort_by]
        if sort_order == SortOrder.asc:
            ordering = (column.asc(), WeatherQuery.id.asc())
        else:
            ordering = (column.desc(), WeatherQuery.id.desc())

        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(WeatherQuery).where(*conditions)
                )
            ).scalar_one()
            rows = (
                await session.execute(
                    select(WeatherQuery)
                    .where(*conditions)
                    .order_by(*ordering)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()

        return list(rows), total
