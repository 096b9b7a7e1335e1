"""
Repository for routing rate-limit counters.
"""
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from proximity.database.models.rate_limit import RoutingRateLimit
from proximity.database.repositories.base import BaseRepository


class RateLimitRepository(BaseRepository[RoutingRateLimit]):
    """Repository for RoutingRateLimit rows keyed by ``bucket_key``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RoutingRateLimit, "bucket_key")

    async def increment(
        self,
        bucket_key: str,
        user_id: Optional[str],
        ip: Optional[str],
        window_seconds: int,
        max_requests: int,
    ) -> int:
        """
        Atomically count one request against a bucket.

        A single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` both
        creates the bucket and increments it, so concurrent callers never
        lose an increment.

        Returns:
            The bucket's count after this request
        """
        stmt = insert(RoutingRateLimit).values(
            bucket_key=bucket_key,
            user_id=user_id,
            ip=ip,
            window_seconds=window_seconds,
            max_requests=max_requests,
            count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RoutingRateLimit.bucket_key],
            set_={
                "count": RoutingRateLimit.count + 1,
                "max_requests": stmt.excluded.max_requests,
                "updated_at": func.now(),
            },
        ).returning(RoutingRateLimit.count)

        result = await self.session.execute(stmt)
        return result.scalar_one()
