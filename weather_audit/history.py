"""
Query history reads.

The service is scoped by an explicit owner id and does no authorization of
its own: routes decide whose history a caller may read.
"""
from typing import Optional

from .audit import AuditRepository
from .config import settings
from .schemas import HistoryItem, HistoryPage, SnapshotData, SortBy, SortOrder


def clamp_page(page: Optional[int]) -> int:
    if page is None or page < 1:
        return 1
    return page


def clamp_limit(
    limit: Optional[int],
    default: int = settings.HISTORY_DEFAULT_LIMIT,
    maximum: int = settings.HISTORY_MAX_LIMIT,
) -> int:
    """Out-of-range page sizes are clamped into [1, maximum], not rejected."""
    if limit is None:
        return default
    return max(1, min(limit, maximum))


class HistoryQueryService:
    def __init__(self, repository: AuditRepository):
        self._repository = repository

    async def list(
        self,
        owner_id: int,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        sort_by: Optional[SortBy] = None,
        sort_order: Optional[SortOrder] = None,
        city: Optional[str] = None,
    ) -> HistoryPage:
        """
        Return one page of an owner's lookups, newest first by default.

        Args:
            owner_id: Whose history to read
            page: 1-based page, defaults to 1
            limit: Page size, defaults to 20, at most 100
            sort_by: queryTime (default) or city
            sort_order: desc (default) or asc
            city: Optional case-insensitive city substring

        Returns:
            HistoryPage with the page items and the total match count
        """
        city_filter = city.strip() if city else None
        rows, total = await self._repository.list_by_owner(
            owner_id,
            page=clamp_page(page),
            limit=clamp_limit(limit),
            sort_by=sort_by or SortBy.queryTime,
            sort_order=sort_order or SortOrder.desc,
            city_filter=city_filter or None,
        )

        items = [
            HistoryItem(
                id=row.owner_id,
                query_id=row.id,
                city=row.city_label,
                query_time=row.query_time,
                weather_data=SnapshotData.model_validate(row.snapshot) if row.snapshot else None,
            )
            for row in rows
        ]
        return HistoryPage(queries=items, total=total)
