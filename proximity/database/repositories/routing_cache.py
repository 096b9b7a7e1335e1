"""
Routing cache repository for database operations.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from proximity.database.models.routing_cache import RoutingCacheEntry
from proximity.database.repositories.base import BaseRepository

_UPSERT_COLUMNS = (
    "origin_bucket",
    "dest_bucket",
    "mode",
    "duration_seconds",
    "distance_meters",
    "provider",
    "computed_at",
    "expires_at",
)


class RoutingCacheRepository(BaseRepository[RoutingCacheEntry]):
    """Repository for RoutingCacheEntry rows keyed by ``cache_key``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RoutingCacheEntry, "cache_key")

    async def get_valid_many(
        self, keys: Iterable[str], now: Optional[datetime] = None
    ) -> List[RoutingCacheEntry]:
        """
        Get non-expired entries for the given keys.

        Args:
            keys: Cache keys to look up
            now: Reference time (defaults to current UTC time)

        Returns:
            Entries whose ``expires_at`` is strictly after ``now``
        """
        unique = list(dict.fromkeys(keys))
        if not unique:
            return []
        now = now or datetime.now(timezone.utc)
        result = await self.session.execute(
            select(RoutingCacheEntry).where(
                RoutingCacheEntry.cache_key.in_(unique),
                RoutingCacheEntry.expires_at > now,
            )
        )
        return list(result.scalars().all())

    async def upsert_many(self, rows: List[Dict[str, Any]]) -> int:
        """
        Insert or replace entries keyed by ``cache_key``.

        Concurrent writers of the same key are last-write-wins; every writer
        carries a successful result, so either outcome is valid.

        Args:
            rows: Column dictionaries for RoutingCacheEntry

        Returns:
            Number of rows sent to the database
        """
        if not rows:
            return 0
        stmt = insert(RoutingCacheEntry).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RoutingCacheEntry.cache_key],
            set_={column: getattr(stmt.excluded, column) for column in _UPSERT_COLUMNS},
        )
        await self.session.execute(stmt)
        return len(rows)
