"""
Candidate ranking.

Combines presence, distance and (for paid viewers) travel time into one
sorted candidate list. Every degraded path (no routing key, rate limited,
provider down, store down) still answers with a warning, carrying
distance-only candidates or, when a store is down, none; only bad input is
rejected.
"""

import logging
import math
import time
from typing import Dict, List, Optional

from proximity.exceptions import StoreUnavailableError
from proximity.models.proximity_models import Candidate, Identity, NearbyQuery, RankingResult
from proximity.providers.base import TravelMode, normalize_mode
from proximity.providers.manager import RoutingProviderManager
from proximity.providers.models import Coordinate
from proximity.services.eta_cache import EtaCacheEntry, EtaCacheStore, build_entry
from proximity.services.presence_service import MAX_ACCURACY_METERS, PresenceService
from proximity.services.profile_service import ProfileService
from proximity.services.rate_limiter import RateLimiter, build_bucket_key
from proximity.utils.geo_utils import (
    ETA_BUCKET_DECIMALS,
    bucket_lat_lng,
    cache_key_for,
    clamp_int,
    compute_time_slice,
    snap_to_bucket,
    validate_point,
)

logger = logging.getLogger(__name__)

# Query clamps: (min, max, default)
RADIUS_METERS = (500, 50000, 10000)
RESULT_LIMIT = (1, 100, 40)
ETA_TOP_N = (5, 60, 25)
ETA_TTL_SECONDS = (120, 600, 300)

PAID_TIER = "PAID"
DEFAULT_TIER = "FREE"

WARNING_NOT_CONFIGURED = "routing provider not configured; returning distance only"
WARNING_RATE_LIMITED = "rate limit exceeded; returning distance only"
WARNING_PROVIDER_UNAVAILABLE = "routing provider unavailable; some ETAs missing"
WARNING_PRESENCE_UNAVAILABLE = "presence store unavailable; no candidates"
WARNING_PROFILE_UNAVAILABLE = "profile store unavailable; location not recorded"


def sort_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """Order by ETA ascending (unknown ETAs last), then by distance."""
    return sorted(
        candidates,
        key=lambda c: (c.eta_seconds if c.eta_seconds is not None else math.inf, c.distance_meters),
    )


class CandidateRankingService:
    """Ranks nearby candidates for a viewer."""

    def __init__(
        self,
        presence: PresenceService,
        profiles: ProfileService,
        cache: EtaCacheStore,
        limiter: RateLimiter,
        manager: RoutingProviderManager,
        nearby_per_minute: int = 30,
        max_presence_age_seconds: int = 900,
    ):
        self.presence = presence
        self.profiles = profiles
        self.cache = cache
        self.limiter = limiter
        self.manager = manager
        self.nearby_per_minute = nearby_per_minute
        self.max_presence_age_seconds = max_presence_age_seconds

    async def rank(
        self,
        viewer: Identity,
        query: NearbyQuery,
        now_ms: Optional[int] = None,
    ) -> RankingResult:
        """
        Record the viewer's location and rank nearby candidates.

        Args:
            viewer: Authenticated caller
            query: Raw ranking parameters (clamped here)
            now_ms: Clock override in epoch milliseconds

        Returns:
            RankingResult; FREE viewers always get ``eta_seconds=None``

        Raises:
            InvalidCoordinateError: If the viewer coordinate is unusable
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        lat, lng = validate_point(query.lat, query.lng, "viewer")
        accuracy_m = clamp_int(query.accuracy_m, 0, MAX_ACCURACY_METERS, None)
        if query.approximate:
            lat, lng = snap_to_bucket(lat, lng, ETA_BUCKET_DECIMALS)

        try:
            profile = await self.profiles.get_profile(viewer.user_id)
        except StoreUnavailableError:
            # Privacy flag unknown: store nothing and look at no one
            return RankingResult(candidates=[], warnings=[WARNING_PROFILE_UNAVAILABLE])
        hidden = bool(profile and profile.privacy_hide_proximity)

        await self.presence.upsert(
            viewer.user_id, lat, lng, accuracy_m, privacy_hide=hidden, approximate=False
        )

        if hidden:
            # Viewer opted out: act offline without looking at anyone else
            return RankingResult(candidates=[])

        tier = str((profile.subscription_tier if profile else None) or viewer.subscription_tier or DEFAULT_TIER).upper()
        mode = normalize_mode(
            (profile.default_travel_mode if profile else None) or viewer.default_travel_mode or "WALK"
        ) or TravelMode.WALK

        radius_m = clamp_int(query.radius_m, *RADIUS_METERS)
        limit = clamp_int(query.limit, *RESULT_LIMIT)

        nearby = await self.presence.find_nearby(
            lat, lng, radius_m, limit,
            exclude_user_id=viewer.user_id,
            max_age_seconds=self.max_presence_age_seconds,
        )
        if nearby is None:
            return RankingResult(candidates=[], warnings=[WARNING_PRESENCE_UNAVAILABLE])

        public_profiles = await self.profiles.get_public_profiles(p.user_id for p in nearby)
        candidates = [
            Candidate(
                user_id=p.user_id,
                profile=public_profiles.get(p.user_id),
                last_lat=p.bucketed_lat,
                last_lng=p.bucketed_lng,
                distance_meters=p.distance_meters,
            )
            for p in nearby
        ]

        if tier != PAID_TIER:
            return RankingResult(candidates=candidates)

        if not self.manager.is_configured:
            return RankingResult(
                candidates=self._distance_only(candidates, mode),
                warnings=[WARNING_NOT_CONFIGURED],
            )

        return await self._rank_with_etas(viewer, candidates, Coordinate(lat=lat, lng=lng), mode, query, now_ms)

    def _distance_only(self, candidates: List[Candidate], mode: TravelMode) -> List[Candidate]:
        return [c.model_copy(update={"eta_seconds": None, "eta_mode": mode.value}) for c in candidates]

    async def _rank_with_etas(
        self,
        viewer: Identity,
        candidates: List[Candidate],
        origin: Coordinate,
        mode: TravelMode,
        query: NearbyQuery,
        now_ms: int,
    ) -> RankingResult:
        top_n = clamp_int(query.eta_top_n, *ETA_TOP_N)
        ttl_seconds = clamp_int(query.eta_ttl_seconds, *ETA_TTL_SECONDS)
        time_slice = compute_time_slice(now_ms, ttl_seconds)
        origin_bucket = bucket_lat_lng(origin.lat, origin.lng, ETA_BUCKET_DECIMALS)

        keyed: List[tuple] = []
        for candidate in candidates[:top_n]:
            dest_bucket = bucket_lat_lng(candidate.last_lat, candidate.last_lng, ETA_BUCKET_DECIMALS)
            keyed.append((candidate, dest_bucket, cache_key_for(origin_bucket, dest_bucket, mode.value, time_slice)))

        etas: Dict[str, EtaCacheEntry] = await self.cache.get(key for _, _, key in keyed)
        warnings: List[str] = []

        # One matrix destination per distinct missing key
        missing: Dict[str, tuple] = {}
        for candidate, dest_bucket, key in keyed:
            if key not in etas and key not in missing:
                missing[key] = (candidate, dest_bucket)

        if missing:
            decision = await self.limiter.check(
                bucket_key=build_bucket_key("nearby", viewer.user_id, viewer.ip, now_ms=now_ms),
                actor_id=viewer.user_id,
                ip=viewer.ip,
                window_seconds=60,
                max_requests=self.nearby_per_minute,
            )
            if not decision.allowed:
                return RankingResult(
                    candidates=self._distance_only(candidates, mode),
                    warnings=[WARNING_RATE_LIMITED],
                )

            fresh = await self._resolve_missing(origin, origin_bucket, mode, missing, ttl_seconds)
            etas.update(fresh)
            if len(fresh) < len(missing):
                warnings.append(WARNING_PROVIDER_UNAVAILABLE)

        key_by_user = {candidate.user_id: key for candidate, _, key in keyed}
        ranked = []
        for candidate in candidates:
            entry = etas.get(key_by_user.get(candidate.user_id))
            if entry is not None:
                ranked.append(candidate.model_copy(update={"eta_seconds": entry.duration_seconds, "eta_mode": mode.value}))
            else:
                ranked.append(candidate)

        return RankingResult(candidates=sort_candidates(ranked), warnings=warnings)

    async def _resolve_missing(
        self,
        origin: Coordinate,
        origin_bucket: str,
        mode: TravelMode,
        missing: Dict[str, tuple],
        ttl_seconds: int,
    ) -> Dict[str, EtaCacheEntry]:
        keys = list(missing)
        destinations = [
            Coordinate(lat=missing[key][0].last_lat, lng=missing[key][0].last_lng) for key in keys
        ]
        matrix = await self.manager.resolve_matrix(origin, destinations, mode, allow_approximation=False)
        if not matrix.ok:
            logger.warning(f"Matrix lookup failed for {len(keys)} destinations: {matrix.error}")
            return {}

        fresh: Dict[str, EtaCacheEntry] = {}
        for key, element in zip(keys, matrix.results):
            if not element.ok:
                continue
            entry = build_entry(
                cache_key=key,
                origin_bucket=origin_bucket,
                dest_bucket=missing[key][1],
                mode=mode.value,
                duration_seconds=element.duration_seconds,
                distance_meters=element.distance_meters,
                provider=matrix.provider,
                ttl_seconds=ttl_seconds,
            )
            if entry is not None:
                fresh[key] = entry

        # Written only after the matching successful matrix response
        await self.cache.put(fresh.values())
        return fresh
