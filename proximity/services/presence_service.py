"""
Presence store: dual-precision user locations.

Every location ping writes two projections:

- private (``user_presence_private``): the precise coordinate, only read by
  server-side code
- public (``user_presence_public``): the coordinate bucketed to a ~111 m
  grid, the only projection nearby queries ever see

Opting out of proximity nulls the coordinates in both rows. The private row
is written first and the public row last, so the public projection never
holds a location newer than the private one.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from proximity.database.connection import session_scope
from proximity.database.repositories.presence import PresenceRepository
from proximity.models.proximity_models import NearbyPresence, PresenceRecord
from proximity.utils.async_utils import run_with_timeout
from proximity.utils.geo_utils import (
    ETA_BUCKET_DECIMALS,
    PRESENCE_BUCKET_DECIMALS,
    bounding_box,
    calculate_distance_meters,
    clamp_int,
    snap_to_bucket,
    validate_point,
)

logger = logging.getLogger(__name__)

MAX_ACCURACY_METERS = 5000


class PresenceService:
    """Reads and writes the presence projections."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]],
        timeout: float = 8.0,
        max_age_seconds: int = 900,
    ):
        """
        Initialize the presence service.

        Args:
            session_maker: Session factory for the presence tables
            timeout: Upper bound in seconds for one store round-trip
            max_age_seconds: Default staleness cutoff for nearby queries
        """
        self._session_maker = session_maker
        self.timeout = timeout
        self.max_age_seconds = max_age_seconds

    async def _write_private(self, user_id, lat, lng, accuracy_m, hidden, now) -> None:
        async with session_scope(self._session_maker) as session:
            await PresenceRepository(session).upsert_private(
                user_id=user_id,
                lat=lat,
                lng=lng,
                accuracy_m=accuracy_m,
                privacy_hide_proximity=hidden,
                updated_at=now,
            )

    async def _write_public(self, user_id, lat, lng, accuracy_m, hidden, now) -> None:
        async with session_scope(self._session_maker) as session:
            await PresenceRepository(session).upsert_public(
                user_id=user_id,
                bucketed_lat=lat,
                bucketed_lng=lng,
                accuracy_m=accuracy_m,
                is_online=not hidden,
                privacy_hide_proximity=hidden,
                updated_at=now,
            )

    async def _guarded(self, label: str, user_id: str, coro) -> bool:
        try:
            await run_with_timeout(coro, self.timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Presence {label} write timed out for {user_id}; skip persistence")
        except Exception as e:
            logger.error(f"Presence {label} write failed for {user_id}: {e}; skip persistence", exc_info=True)
        return False

    async def upsert(
        self,
        user_id: str,
        lat: Any,
        lng: Any,
        accuracy_m: Any = None,
        privacy_hide: bool = False,
        approximate: bool = False,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Record a location ping for ``user_id``.

        Args:
            user_id: Owner of the ping
            lat, lng: Reported coordinate (ignored when ``privacy_hide``)
            accuracy_m: Reported accuracy, clamped to 0-5000 m
            privacy_hide: User hides proximity; both projections get NULLs
            approximate: Snap the coordinate to the ~1.1 km grid before
                storing either projection
            now: Timestamp written to ``updated_at``

        Returns:
            True when both projections were written

        Raises:
            InvalidCoordinateError: For an unusable coordinate when
                proximity is not hidden
        """
        now = now or datetime.now(timezone.utc)
        accuracy = clamp_int(accuracy_m, 0, MAX_ACCURACY_METERS, None)

        if privacy_hide:
            precise = (None, None)
            public = (None, None)
        else:
            point = validate_point(lat, lng, "presence")
            if approximate:
                point = snap_to_bucket(point[0], point[1], ETA_BUCKET_DECIMALS)
            precise = point
            public = snap_to_bucket(point[0], point[1], PRESENCE_BUCKET_DECIMALS)

        if self._session_maker is None:
            logger.warning("Presence store not configured; skip persistence")
            return False

        private_ok = await self._guarded(
            "private", user_id,
            self._write_private(user_id, precise[0], precise[1], accuracy, privacy_hide, now),
        )
        public_ok = await self._guarded(
            "public", user_id,
            self._write_public(user_id, public[0], public[1], accuracy, privacy_hide, now),
        )
        return private_ok and public_ok

    async def _read(self, user_id: str):
        async with session_scope(self._session_maker) as session:
            repo = PresenceRepository(session)
            return await repo.get_private(user_id), await repo.get_public(user_id)

    async def read(self, user_id: str) -> Optional[PresenceRecord]:
        """
        Merge both projections for ``user_id``.

        Returns:
            PresenceRecord, or None when the user has no rows or the store
            cannot be read
        """
        if self._session_maker is None:
            return None
        try:
            private, public = await run_with_timeout(self._read(user_id), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Presence read timed out for {user_id}")
            return None
        except Exception as e:
            logger.error(f"Presence read failed for {user_id}: {e}", exc_info=True)
            return None

        if private is None and public is None:
            return None

        timestamps = [row.updated_at for row in (private, public) if row is not None and row.updated_at]
        return PresenceRecord(
            user_id=user_id,
            precise_lat=private.precise_lat if private else None,
            precise_lng=private.precise_lng if private else None,
            bucketed_lat=public.bucketed_lat if public else None,
            bucketed_lng=public.bucketed_lng if public else None,
            accuracy_m=(private.accuracy_m if private else public.accuracy_m),
            is_online=bool(public.is_online) if public else False,
            privacy_hide_proximity=bool(
                (private and private.privacy_hide_proximity) or (public and public.privacy_hide_proximity)
            ),
            updated_at=max(timestamps) if timestamps else None,
        )

    async def _find(self, box, updated_after, exclude_user_id):
        async with session_scope(self._session_maker) as session:
            return await PresenceRepository(session).find_in_box(
                min_lat=box[0],
                max_lat=box[1],
                min_lng=box[2],
                max_lng=box[3],
                updated_after=updated_after,
                exclude_user_id=exclude_user_id,
            )

    async def find_nearby(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        limit: int,
        exclude_user_id: Optional[str] = None,
        max_age_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[List[NearbyPresence]]:
        """
        Find public presences within ``radius_m`` of a point.

        A bounding box prefilters in SQL; exact haversine distance filters
        and orders the rows here.

        Returns:
            Up to ``limit`` rows sorted by ascending distance, or None when
            the store could not be queried
        """
        if self._session_maker is None:
            return None

        now = now or datetime.now(timezone.utc)
        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        updated_after = now - timedelta(seconds=max_age)
        box = bounding_box(lat, lng, radius_m)

        try:
            rows = await run_with_timeout(self._find(box, updated_after, exclude_user_id), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Nearby presence query timed out")
            return None
        except Exception as e:
            logger.error(f"Nearby presence query failed: {e}", exc_info=True)
            return None

        nearby = []
        for row in rows:
            if row.bucketed_lat is None or row.bucketed_lng is None:
                continue
            if exclude_user_id is not None and row.user_id == exclude_user_id:
                continue
            distance = calculate_distance_meters(lat, lng, row.bucketed_lat, row.bucketed_lng)
            if distance > radius_m:
                continue
            nearby.append(
                NearbyPresence(
                    user_id=str(row.user_id),
                    bucketed_lat=row.bucketed_lat,
                    bucketed_lng=row.bucketed_lng,
                    distance_meters=int(round(distance)),
                )
            )

        nearby.sort(key=lambda p: p.distance_meters)
        return nearby[:limit]
