"""
Point-to-point travel times and directions.

Resolves per-mode ETAs through the bucketed, time-sliced cache in front of
the routing tiers:

1. Validate the points and normalize the requested modes
2. Check the caller's rate limit
3. Batch-read the cache for every (origin bucket, dest bucket, mode, slice)
4. Resolve misses through the provider manager, one in-flight call per key
5. Write successful provider results back to the cache
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from proximity.exceptions import RateLimitExceededError, RoutingUnavailableError, UnsupportedModeError
from proximity.models.proximity_models import Identity, TravelTimeOption, TravelTimeResponse
from proximity.providers.base import ProviderType, TravelMode, normalize_mode
from proximity.providers.manager import RoutingProviderManager
from proximity.providers.models import Coordinate, DirectionsResult, RouteResult
from proximity.services.eta_cache import EtaCacheStore, entry_from_route
from proximity.services.rate_limiter import RateLimiter, build_bucket_key
from proximity.utils.async_utils import SingleFlight
from proximity.utils.geo_utils import (
    ETA_BUCKET_DECIMALS,
    bucket_lat_lng,
    cache_key_for,
    clamp_int,
    compute_time_slice,
    validate_point,
)
from proximity.utils.units import minutes_label

logger = logging.getLogger(__name__)

DEFAULT_ETA_MODES = (TravelMode.WALK, TravelMode.TRANSIT, TravelMode.DRIVE)
MAX_ETA_MODES = 5
ETA_TTL_MIN_SECONDS = 60
ETA_TTL_MAX_SECONDS = 300
ETA_TTL_DEFAULT_SECONDS = 120

TRAVEL_TIME_MODES = (TravelMode.WALK, TravelMode.DRIVE, TravelMode.BICYCLE)
TRAVEL_TIME_TTL_SECONDS = 120

RATE_LIMIT_WINDOW_SECONDS = 60


def _point(raw: Any, name: str) -> Coordinate:
    if isinstance(raw, dict):
        lat, lng = raw.get("lat"), raw.get("lng")
    else:
        lat, lng = getattr(raw, "lat", None), getattr(raw, "lng", None)
    lat_f, lng_f = validate_point(lat, lng, name)
    return Coordinate(lat=lat_f, lng=lng_f)


def normalize_modes(requested: Optional[Iterable[Any]]) -> List[TravelMode]:
    """
    Normalize a requested mode list.

    Unknown names are dropped, duplicates collapse (first occurrence wins)
    and at most five modes are kept. ``None`` selects WALK, TRANSIT, DRIVE.

    Raises:
        UnsupportedModeError: If a list was given and none of it is a known mode
    """
    if requested is None:
        return list(DEFAULT_ETA_MODES)

    modes: List[TravelMode] = []
    for value in requested:
        mode = normalize_mode(value)
        if mode is not None and mode not in modes:
            modes.append(mode)

    if not modes:
        raise UnsupportedModeError("No supported travel mode requested", {"modes": list(requested)})
    return modes[:MAX_ETA_MODES]


class TravelTimeService:
    """Per-mode ETAs, directions and the travel-time summary."""

    def __init__(
        self,
        manager: RoutingProviderManager,
        cache: EtaCacheStore,
        limiter: RateLimiter,
        single_flight: Optional[SingleFlight] = None,
        etas_per_minute: int = 20,
        travel_time_per_minute: int = 60,
    ):
        """
        Initialize the service.

        Args:
            manager: Routing tiers
            cache: ETA cache store
            limiter: Rate limiter shared with the ranking service
            single_flight: In-flight map for cache misses (one per process)
            etas_per_minute: Budget for ETA and directions requests per user+IP
            travel_time_per_minute: Budget for travel-time summaries per IP
        """
        self.manager = manager
        self.cache = cache
        self.limiter = limiter
        self.single_flight = single_flight or SingleFlight()
        self.etas_per_minute = etas_per_minute
        self.travel_time_per_minute = travel_time_per_minute

    async def _enforce(self, bucket_key: str, user_id: Optional[str], ip: Optional[str], max_requests: int) -> None:
        decision = await self.limiter.check(
            bucket_key=bucket_key,
            actor_id=user_id,
            ip=ip,
            window_seconds=RATE_LIMIT_WINDOW_SECONDS,
            max_requests=max_requests,
        )
        if not decision.allowed:
            raise RateLimitExceededError(remaining=decision.remaining or 0)

    async def _resolve_and_store(
        self,
        cache_key: str,
        origin: Coordinate,
        destination: Coordinate,
        origin_bucket: str,
        dest_bucket: str,
        mode: TravelMode,
        ttl_seconds: int,
        strict: bool,
    ) -> RouteResult:
        result = await self.manager.resolve(origin, destination, mode, strict=strict)
        # Only provider answers are cached
        if result.ok and result.provider != ProviderType.APPROX.value:
            await self.cache.put([
                entry_from_route(cache_key, origin_bucket, dest_bucket, mode.value, result, ttl_seconds)
            ])
        return result

    async def resolve_modes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        modes: List[TravelMode],
        ttl_seconds: int,
        strict: bool = False,
        now_ms: Optional[int] = None,
    ) -> Dict[TravelMode, Optional[Dict[str, Any]]]:
        """
        Resolve ETAs for several modes through the cache.

        Returns:
            Mapping of mode to ETA dict, or None where no tier could answer

        Raises:
            RoutingUnavailableError: In strict mode, when a mode could not be
                resolved by a network tier
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        time_slice = compute_time_slice(now_ms, ttl_seconds)
        origin_bucket = bucket_lat_lng(origin.lat, origin.lng, ETA_BUCKET_DECIMALS)
        dest_bucket = bucket_lat_lng(destination.lat, destination.lng, ETA_BUCKET_DECIMALS)

        keys = {mode: cache_key_for(origin_bucket, dest_bucket, mode.value, time_slice) for mode in modes}
        cached = await self.cache.get(keys.values())

        results: Dict[TravelMode, Optional[Dict[str, Any]]] = {}
        misses: List[TravelMode] = []
        for mode in modes:
            entry = cached.get(keys[mode])
            if entry is not None:
                results[mode] = entry.to_eta()
            else:
                misses.append(mode)

        if misses:
            logger.debug(f"ETA cache misses: {[m.value for m in misses]}")

            # Strict and lenient callers never share a flight: their fallbacks differ
            def flight(mode: TravelMode):
                return self.single_flight.do(
                    f"{keys[mode]}:{int(strict)}",
                    lambda: self._resolve_and_store(
                        keys[mode], origin, destination, origin_bucket, dest_bucket, mode, ttl_seconds, strict
                    ),
                )

            resolved = await asyncio.gather(*(flight(mode) for mode in misses))
            for mode, route in zip(misses, resolved):
                if not route.ok:
                    if strict:
                        raise RoutingUnavailableError(
                            f"Routing failed for {mode.value}: {route.error}",
                            {"mode": mode.value, "provider": route.provider, "error": route.error},
                        )
                    logger.info(f"No ETA for {mode.value}: {route.error}")
                results[mode] = route.to_eta()

        return results

    async def get_etas(
        self,
        identity: Identity,
        origin: Any,
        destination: Any,
        modes: Optional[Iterable[Any]] = None,
        ttl_seconds: Any = None,
        strict: bool = False,
        now_ms: Optional[int] = None,
    ) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        Per-mode ETAs between two points.

        Returns:
            ``{walk, transit, drive}`` always present (each None or an ETA),
            plus ``bicycle`` / ``two_wheeler`` when requested
        """
        origin_pt = _point(origin, "origin")
        dest_pt = _point(destination, "destination")
        mode_list = normalize_modes(modes)
        ttl = clamp_int(ttl_seconds, ETA_TTL_MIN_SECONDS, ETA_TTL_MAX_SECONDS, ETA_TTL_DEFAULT_SECONDS)

        await self._enforce(
            build_bucket_key("etas", identity.user_id, identity.ip, now_ms=now_ms),
            identity.user_id,
            identity.ip,
            self.etas_per_minute,
        )

        resolved = await self.resolve_modes(origin_pt, dest_pt, mode_list, ttl, strict=strict, now_ms=now_ms)

        response: Dict[str, Optional[Dict[str, Any]]] = {
            TravelMode.WALK.response_key: resolved.get(TravelMode.WALK),
            TravelMode.TRANSIT.response_key: resolved.get(TravelMode.TRANSIT),
            TravelMode.DRIVE.response_key: resolved.get(TravelMode.DRIVE),
        }
        for optional_mode in (TravelMode.BICYCLE, TravelMode.TWO_WHEELER):
            if optional_mode in mode_list:
                response[optional_mode.response_key] = resolved.get(optional_mode)
        return response

    async def get_directions(
        self,
        identity: Identity,
        origin: Any,
        destination: Any,
        mode: Any,
        strict: bool = False,
        now_ms: Optional[int] = None,
    ) -> DirectionsResult:
        """
        Turn-by-turn directions between two points.

        Raises:
            UnsupportedModeError: For an unknown mode
            RoutingUnavailableError: In strict mode, when the primary tier failed
        """
        origin_pt = _point(origin, "origin")
        dest_pt = _point(destination, "destination")
        travel_mode = normalize_mode(mode)
        if travel_mode is None:
            raise UnsupportedModeError(f"Unsupported mode: {mode}", {"mode": mode})

        await self._enforce(
            build_bucket_key("directions", identity.user_id, identity.ip, now_ms=now_ms),
            identity.user_id,
            identity.ip,
            self.etas_per_minute,
        )

        result = await self.manager.resolve_directions(origin_pt, dest_pt, travel_mode, strict=strict)
        if not result.ok and strict:
            raise RoutingUnavailableError(
                f"Directions failed: {result.error}",
                {"mode": travel_mode.value, "provider": result.provider, "error": result.error},
            )
        return result

    async def get_travel_time(
        self,
        origin: Any,
        destination: Any,
        ip: Optional[str] = None,
        user_id: Optional[str] = None,
        now_ms: Optional[int] = None,
    ) -> TravelTimeResponse:
        """
        Human-friendly travel-time summary (foot, cab, bike, ride-hail).

        Ride-hail has no provider of its own; the DRIVE estimate stands in
        for it.
        """
        origin_pt = _point(origin, "origin")
        dest_pt = _point(destination, "destination")

        await self._enforce(
            build_bucket_key("travel_time", ip, now_ms=now_ms),
            user_id,
            ip,
            self.travel_time_per_minute,
        )

        resolved = await self.resolve_modes(
            origin_pt, dest_pt, list(TRAVEL_TIME_MODES), TRAVEL_TIME_TTL_SECONDS, now_ms=now_ms
        )

        def option(eta: Optional[Dict[str, Any]], suffix: str) -> Optional[TravelTimeOption]:
            if not eta:
                return None
            seconds = eta["duration_seconds"]
            return TravelTimeOption(duration_seconds=seconds, label=minutes_label(seconds, suffix))

        walking = option(resolved.get(TravelMode.WALK), "on foot")
        driving = option(resolved.get(TravelMode.DRIVE), "by cab")
        bicycling = option(resolved.get(TravelMode.BICYCLE), "by bike")
        uber = option(resolved.get(TravelMode.DRIVE), "uber")

        fastest = None
        for candidate in (walking, driving, bicycling, uber):
            if candidate is not None and (fastest is None or candidate.duration_seconds < fastest.duration_seconds):
                fastest = candidate

        if self.manager.is_configured:
            meta = {"provider": "google"}
        else:
            meta = {"provider": ProviderType.APPROX.value, "reason": "missing_routing_api_key"}

        return TravelTimeResponse(
            walking=walking,
            driving=driving,
            bicycling=bicycling,
            uber=uber,
            fastest=fastest,
            meta=meta,
        )

