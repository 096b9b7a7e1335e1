"""
Repository for the private and public presence projections.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from proximity.database.models.presence import PrivatePresence, PublicPresence


class PresenceRepository:
    """
    Repository for presence rows.

    Both tables are keyed by ``user_id`` and written with upserts, so it
    doesn't extend BaseRepository.
    """

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        self.session = session

    async def _upsert(self, model, values: Dict[str, Any]) -> None:
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.user_id],
            set_={k: v for k, v in values.items() if k != "user_id"},
        )
        await self.session.execute(stmt)

    async def upsert_private(
        self,
        user_id: str,
        lat: Optional[float],
        lng: Optional[float],
        accuracy_m: Optional[int],
        privacy_hide_proximity: bool,
        updated_at: datetime,
    ) -> None:
        """Insert or replace the precise projection for ``user_id``."""
        await self._upsert(PrivatePresence, {
            "user_id": user_id,
            "precise_lat": lat,
            "precise_lng": lng,
            "accuracy_m": accuracy_m,
            "privacy_hide_proximity": privacy_hide_proximity,
            "updated_at": updated_at,
        })

    async def upsert_public(
        self,
        user_id: str,
        bucketed_lat: Optional[float],
        bucketed_lng: Optional[float],
        accuracy_m: Optional[int],
        is_online: bool,
        privacy_hide_proximity: bool,
        updated_at: datetime,
    ) -> None:
        """Insert or replace the bucketed projection for ``user_id``."""
        await self._upsert(PublicPresence, {
            "user_id": user_id,
            "bucketed_lat": bucketed_lat,
            "bucketed_lng": bucketed_lng,
            "accuracy_m": accuracy_m,
            "is_online": is_online,
            "privacy_hide_proximity": privacy_hide_proximity,
            "updated_at": updated_at,
        })

    async def get_private(self, user_id: str) -> Optional[PrivatePresence]:
        result = await self.session.execute(
            select(PrivatePresence).where(PrivatePresence.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_public(self, user_id: str) -> Optional[PublicPresence]:
        result = await self.session.execute(
            select(PublicPresence).where(PublicPresence.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_in_box(
        self,
        min_lat: float,
        max_lat: float,
        min_lng: float,
        max_lng: float,
        updated_after: datetime,
        exclude_user_id: Optional[str] = None,
    ) -> List[PublicPresence]:
        """
        Find visible public rows inside a bounding box.

        Args:
            min_lat, max_lat, min_lng, max_lng: Box bounds in degrees; a box
                crossing the antimeridian has min_lng > max_lng
            updated_after: Ignore rows not refreshed since this time
            exclude_user_id: User to leave out (the viewer)

        Returns:
            Online, non-hidden rows with coordinates inside the box
        """
        if min_lng <= max_lng:
            lng_filter = PublicPresence.bucketed_lng.between(min_lng, max_lng)
        else:
            lng_filter = or_(
                PublicPresence.bucketed_lng >= min_lng,
                PublicPresence.bucketed_lng <= max_lng,
            )

        query = select(PublicPresence).where(
            PublicPresence.bucketed_lat.is_not(None),
            PublicPresence.bucketed_lng.is_not(None),
            PublicPresence.privacy_hide_proximity.is_(False),
            PublicPresence.is_online.is_(True),
            PublicPresence.updated_at > updated_after,
            PublicPresence.bucketed_lat.between(min_lat, max_lat),
            lng_filter,
        )
        if exclude_user_id is not None:
            query = query.where(PublicPresence.user_id != exclude_user_id)

        result = await self.session.execute(query)
        return list(result.scalars().all())
