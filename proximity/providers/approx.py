"""
Local approximation tier.

Straight-line (haversine) distance with fixed city-tuned speeds. Used when no
network provider is configured or reachable; never fails for finite input in
a supported mode.
"""

import logging
from typing import List

from .base import ProviderType, RoutingProvider, TravelMode
from .models import (
    Coordinate,
    DirectionsResult,
    DirectionsStep,
    MatrixElement,
    MatrixResult,
    RouteResult,
    ensure_bounded_steps,
)
from ..utils.geo_utils import calculate_distance_meters

logger = logging.getLogger(__name__)

# City travel, not motorway travel. TRANSIT is a rough drive proxy.
APPROX_SPEEDS_KMH = {
    TravelMode.DRIVE: 22.0,
    TravelMode.BICYCLE: 16.0,
    TravelMode.WALK: 4.8,
    TravelMode.TRANSIT: 18.0,
}

MIN_DURATION_SECONDS = 60


def approximate_route(origin: Coordinate, destination: Coordinate, mode: TravelMode) -> RouteResult:
    """
    Estimate duration and distance from haversine distance and a fixed speed.

    Returns:
        RouteResult with ``provider="approx"``, or a failure for modes
        without an assumed speed
    """
    speed_kmh = APPROX_SPEEDS_KMH.get(mode)
    if speed_kmh is None:
        return RouteResult.failure(f"No approximation for mode: {mode.value}", provider=ProviderType.APPROX.value)

    distance_meters = int(round(calculate_distance_meters(origin.lat, origin.lng, destination.lat, destination.lng)))
    seconds = round((distance_meters / 1000.0) / speed_kmh * 3600)
    return RouteResult(
        ok=True,
        duration_seconds=max(MIN_DURATION_SECONDS, seconds),
        distance_meters=distance_meters,
        provider=ProviderType.APPROX.value,
    )


class ApproximateRoutingProvider(RoutingProvider):
    """Tertiary tier: deterministic, offline, always available."""

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.APPROX

    @property
    def supported_modes(self) -> frozenset:
        return frozenset(APPROX_SPEEDS_KMH)

    async def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> RouteResult:
        return approximate_route(origin, destination, mode)

    async def compute_matrix(
        self,
        origin: Coordinate,
        destinations: List[Coordinate],
        mode: TravelMode,
    ) -> MatrixResult:
        if mode not in APPROX_SPEEDS_KMH:
            return MatrixResult.failure(f"No approximation for mode: {mode.value}", provider=ProviderType.APPROX.value)

        results = []
        for destination in destinations:
            route = approximate_route(origin, destination, mode)
            results.append(
                MatrixElement(
                    ok=route.ok,
                    duration_seconds=route.duration_seconds,
                    distance_meters=route.distance_meters,
                )
            )
        return MatrixResult(ok=True, results=results, provider=ProviderType.APPROX.value)

    async def compute_directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> DirectionsResult:
        """Straight-line directions: a depart step followed by an arrive step."""
        route = approximate_route(origin, destination, mode)
        if not route.ok:
            return DirectionsResult.failure(route.error, provider=route.provider)

        return DirectionsResult(
            ok=True,
            duration_seconds=route.duration_seconds,
            distance_meters=route.distance_meters,
            provider=route.provider,
            encoded_polyline=None,
            steps=ensure_bounded_steps([
                DirectionsStep(
                    maneuver="continue",
                    instruction="Head toward destination",
                    distance_meters=route.distance_meters,
                    duration_seconds=route.duration_seconds,
                )
            ]),
        )
