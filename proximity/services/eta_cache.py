"""
ETA cache store.

Thin, failure-tolerant layer over the ``routing_cache`` table. Reads degrade
to "always miss" and writes to a no-op when the store is slow or down; a
missing cache must never fail the surrounding request.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from proximity.database.connection import session_scope
from proximity.database.repositories.routing_cache import RoutingCacheRepository
from proximity.providers.models import RouteResult
from proximity.utils.async_utils import run_with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EtaCacheEntry:
    """One resolved travel time, as stored in ``routing_cache``."""

    cache_key: str
    origin_bucket: str
    dest_bucket: str
    mode: str
    duration_seconds: int
    distance_meters: int
    provider: str
    computed_at: datetime
    expires_at: datetime

    @property
    def is_valid(self) -> bool:
        """Whether the entry may be persisted."""
        return (
            isinstance(self.duration_seconds, int)
            and self.duration_seconds > 0
            and isinstance(self.distance_meters, int)
            and self.distance_meters >= 0
        )

    def to_eta(self) -> Dict[str, Any]:
        return {
            "duration_seconds": self.duration_seconds,
            "distance_meters": self.distance_meters,
            "provider": self.provider,
        }

    @classmethod
    def from_row(cls, row) -> "EtaCacheEntry":
        return cls(
            cache_key=row.cache_key,
            origin_bucket=row.origin_bucket,
            dest_bucket=row.dest_bucket,
            mode=row.mode,
            duration_seconds=row.duration_seconds,
            distance_meters=row.distance_meters,
            provider=row.provider,
            computed_at=row.computed_at,
            expires_at=row.expires_at,
        )


def build_entry(
    cache_key: str,
    origin_bucket: str,
    dest_bucket: str,
    mode: str,
    duration_seconds: Optional[int],
    distance_meters: Optional[int],
    provider: Optional[str],
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> Optional[EtaCacheEntry]:
    """
    Build a cache entry expiring ``ttl_seconds`` after ``now``.

    Returns:
        EtaCacheEntry, or None when the values are not a successful result
    """
    if not duration_seconds or duration_seconds <= 0:
        return None
    if distance_meters is None or distance_meters < 0:
        return None

    now = now or datetime.now(timezone.utc)
    return EtaCacheEntry(
        cache_key=cache_key,
        origin_bucket=origin_bucket,
        dest_bucket=dest_bucket,
        mode=mode,
        duration_seconds=int(duration_seconds),
        distance_meters=int(distance_meters),
        provider=provider or "unknown",
        computed_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )


def entry_from_route(
    cache_key: str,
    origin_bucket: str,
    dest_bucket: str,
    mode: str,
    result: RouteResult,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> Optional[EtaCacheEntry]:
    """Build a cache entry from a RouteResult; failed results yield None."""
    if not result.ok:
        return None
    return build_entry(
        cache_key,
        origin_bucket,
        dest_bucket,
        mode,
        result.duration_seconds,
        result.distance_meters,
        result.provider,
        ttl_seconds,
        now,
    )


class EtaCacheStore:
    """Best-effort key/value store of resolved travel times."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]],
        timeout: float = 8.0,
    ):
        """
        Initialize the store.

        Args:
            session_maker: Session factory; None turns the store into a
                permanent miss / no-op
            timeout: Upper bound in seconds for one store round-trip
        """
        self._session_maker = session_maker
        self.timeout = timeout
        self._stats = {"hits": 0, "misses": 0, "writes": 0, "errors": 0}

    @property
    def enabled(self) -> bool:
        return self._session_maker is not None

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def _read(self, keys: List[str], now: datetime) -> List[Any]:
        async with session_scope(self._session_maker) as session:
            repo = RoutingCacheRepository(session)
            return await repo.get_valid_many(keys, now=now)

    async def _write(self, rows: List[Dict[str, Any]]) -> int:
        async with session_scope(self._session_maker) as session:
            repo = RoutingCacheRepository(session)
            return await repo.upsert_many(rows)

    async def get(self, keys: Iterable[str], now: Optional[datetime] = None) -> Dict[str, EtaCacheEntry]:
        """
        Batch-read unexpired entries.

        Args:
            keys: Cache keys to look up
            now: Reference time for the expiry filter

        Returns:
            Mapping of found keys to entries; empty on any store failure
        """
        unique = list(dict.fromkeys(keys))
        if not unique or not self.enabled:
            return {}

        now = now or datetime.now(timezone.utc)
        try:
            rows = await run_with_timeout(self._read(unique, now), self.timeout)
        except asyncio.TimeoutError:
            self._stats["errors"] += 1
            logger.warning(f"ETA cache read timed out for {len(unique)} keys; treating as miss")
            return {}
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"ETA cache read failed: {e}; treating as miss", exc_info=True)
            return {}

        found = {}
        for row in rows:
            entry = EtaCacheEntry.from_row(row)
            if entry.expires_at > now and entry.is_valid:
                found[entry.cache_key] = entry

        self._stats["hits"] += len(found)
        self._stats["misses"] += len(unique) - len(found)
        logger.debug(f"ETA cache: {len(found)}/{len(unique)} hits")
        return found

    async def put(self, entries: Iterable[Optional[EtaCacheEntry]]) -> int:
        """
        Upsert entries by ``cache_key``.

        Invalid entries are dropped before writing; failures are logged and
        swallowed.

        Returns:
            Number of entries written (0 on failure)
        """
        valid: Dict[str, EtaCacheEntry] = {}
        for entry in entries:
            if entry is None:
                continue
            if not entry.is_valid:
                logger.warning(f"Refusing to cache invalid ETA for key {entry.cache_key[:12]}")
                continue
            valid[entry.cache_key] = entry

        if not valid or not self.enabled:
            return 0

        rows = [asdict(entry) for entry in valid.values()]
        try:
            written = await run_with_timeout(self._write(rows), self.timeout)
        except asyncio.TimeoutError:
            self._stats["errors"] += 1
            logger.warning(f"ETA cache write timed out for {len(rows)} entries; skipping")
            return 0
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"ETA cache write failed: {e}; skipping", exc_info=True)
            return 0

        self._stats["writes"] += written
        return written
