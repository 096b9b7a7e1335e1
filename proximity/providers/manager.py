"""
Routing tier management.

``RoutingProviderManager`` owns the configured tiers and walks them in order:
primary (Routes API) → secondary (Distance Matrix, batch only) → local
approximation. It is built once at process start and injected into services.
"""

import logging
from typing import Dict, List, Optional

import httpx

from .approx import ApproximateRoutingProvider
from .base import ProviderType, RoutingProvider, TravelMode
from .models import Coordinate, DirectionsResult, MatrixResult, RouteResult
from .settings import ProximitySettings

logger = logging.getLogger(__name__)


class RoutingProviderManager:
    """
    Coordinates routing tiers for a request.

    Tier failures are counted in ``get_stats()`` and never raised, so callers
    can rely on a result value from every method.
    """

    def __init__(
        self,
        primary: Optional[RoutingProvider] = None,
        approximation: Optional[RoutingProvider] = None,
        traffic_aware: bool = False,
    ):
        """
        Initialize the manager.

        Args:
            primary: Network provider answering single routes and matrices.
                None when no provider is configured.
            approximation: Local tier; defaults to ApproximateRoutingProvider
            traffic_aware: Default traffic-awareness for DRIVE routes
        """
        self._primary = primary
        self._approximation = approximation or ApproximateRoutingProvider()
        self.traffic_aware = traffic_aware
        self._stats: Dict[str, int] = {
            "primary_calls": 0,
            "primary_failures": 0,
            "matrix_calls": 0,
            "matrix_failures": 0,
            "approximations": 0,
        }

    @property
    def is_configured(self) -> bool:
        """Whether a network provider is available."""
        return self._primary is not None

    @property
    def primary(self) -> Optional[RoutingProvider]:
        return self._primary

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def resolve(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: Optional[bool] = None,
        strict: bool = False,
    ) -> RouteResult:
        """
        Resolve one route, falling back to the approximation.

        Args:
            origin: Starting coordinate
            destination: Ending coordinate
            mode: Transport mode
            traffic_aware: Override for the configured traffic-awareness
            strict: Disable fallback to approximation

        Returns:
            RouteResult from the first tier that answered; when every tier
            failed, the primary tier's failure (or the approximation's)
        """
        use_traffic = self.traffic_aware if traffic_aware is None else traffic_aware
        primary_failure: Optional[RouteResult] = None

        if self._primary is not None:
            if self._primary.supports(mode):
                self._stats["primary_calls"] += 1
                result = await self._primary.compute_route(origin, destination, mode, use_traffic)
                if result.ok:
                    return result
                self._stats["primary_failures"] += 1
                primary_failure = result
                logger.info(f"Primary routing tier failed ({result.error}); falling through")
            else:
                primary_failure = RouteResult.failure(
                    f"Unsupported mode: {mode.value}", provider=self._primary.provider_type.value
                )

        if strict:
            return primary_failure or RouteResult.failure(
                "Routing provider not configured", provider=ProviderType.APPROX.value
            )

        self._stats["approximations"] += 1
        approx = await self._approximation.compute_route(origin, destination, mode)
        if approx.ok or primary_failure is None:
            return approx
        return primary_failure

    async def resolve_matrix(
        self,
        origin: Coordinate,
        destinations: List[Coordinate],
        mode: TravelMode,
        allow_approximation: bool = True,
    ) -> MatrixResult:
        """
        Resolve many destinations in one batch call.

        Args:
            origin: Starting coordinate shared by every destination
            destinations: Destination coordinates
            mode: Transport mode
            allow_approximation: Fall back to the local tier when the
                matrix tier is unavailable or fails

        Returns:
            MatrixResult aligned with ``destinations``
        """
        failure: Optional[MatrixResult] = None

        if self._primary is not None:
            self._stats["matrix_calls"] += 1
            result = await self._primary.compute_matrix(origin, destinations, mode)
            if result.ok:
                return result
            self._stats["matrix_failures"] += 1
            failure = result
            logger.warning(f"Matrix routing tier failed: {result.error}")

        if not allow_approximation:
            return failure or MatrixResult.failure(
                "Routing provider not configured", provider=ProviderType.DIST_MATRIX.value
            )

        self._stats["approximations"] += 1
        return await self._approximation.compute_matrix(origin, destinations, mode)

    async def resolve_directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: Optional[bool] = None,
        strict: bool = False,
    ) -> DirectionsResult:
        """Resolve turn-by-turn directions (never via the matrix tier)."""
        use_traffic = self.traffic_aware if traffic_aware is None else traffic_aware
        primary_failure: Optional[DirectionsResult] = None

        if self._primary is not None and self._primary.supports(mode):
            result = await self._primary.compute_directions(origin, destination, mode, use_traffic)
            if result.ok:
                return result
            primary_failure = result
            logger.info(f"Primary directions tier failed ({result.error}); falling through")

        if strict:
            return primary_failure or DirectionsResult.failure(
                "Routing provider not configured", provider=ProviderType.APPROX.value
            )

        approx = await self._approximation.compute_directions(origin, destination, mode)
        if approx.ok or primary_failure is None:
            return approx
        return primary_failure

    async def close(self) -> None:
        if self._primary is not None:
            await self._primary.close()
        await self._approximation.close()


def create_routing_manager(
    settings: ProximitySettings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> RoutingProviderManager:
    """
    Build the routing manager from settings.

    Args:
        settings: Process settings
        http_client: Shared AsyncClient for the network tier

    Returns:
        Manager with the Google tier when an API key is configured,
        approximation-only otherwise
    """
    primary: Optional[RoutingProvider] = None
    if settings.routing_configured:
        from .google.client import GoogleRoutingClient

        primary = GoogleRoutingClient(
            api_key=settings.google_maps_api_key.strip(),
            http_client=http_client,
            routes_url=settings.routes_api_url,
            matrix_url=settings.distance_matrix_url,
            timeout=settings.routing_timeout_seconds,
        )
    else:
        logger.warning("GOOGLE_MAPS_API_KEY not set; routing limited to local approximation")

    return RoutingProviderManager(
        primary=primary,
        traffic_aware=settings.routes_drive_traffic_aware,
    )
