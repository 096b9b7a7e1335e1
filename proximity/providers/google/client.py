"""
Google Maps Platform routing client.

Implements the primary tier (Routes API v2 ``computeRoutes``) and the
secondary tier (Distance Matrix) behind the RoutingProvider interface.
https://developers.google.com/maps/documentation/routes
https://developers.google.com/maps/documentation/distance-matrix
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..base import ProviderType, RoutingProvider, TravelMode
from ..models import (
    Coordinate,
    DirectionsResult,
    DirectionsStep,
    MatrixElement,
    MatrixResult,
    RouteResult,
    ensure_bounded_steps,
)
from ...utils.units import parse_distance, parse_duration

logger = logging.getLogger(__name__)

ROUTES_TRAVEL_MODES = {
    TravelMode.WALK: "WALK",
    TravelMode.TRANSIT: "TRANSIT",
    TravelMode.DRIVE: "DRIVE",
    TravelMode.BICYCLE: "BICYCLE",
    TravelMode.TWO_WHEELER: "TWO_WHEELER",
}

# Distance Matrix has no two-wheeler profile
MATRIX_TRAVEL_MODES = {
    TravelMode.WALK: "walking",
    TravelMode.TRANSIT: "transit",
    TravelMode.DRIVE: "driving",
    TravelMode.BICYCLE: "bicycling",
}

ETA_FIELD_MASK = "routes.duration,routes.distanceMeters"
TRAFFIC_FIELD_MASK = "routes.duration,routes.distanceMeters,routes.staticDuration"
DIRECTIONS_FIELD_MASK = ",".join([
    "routes.duration",
    "routes.distanceMeters",
    "routes.polyline.encodedPolyline",
    "routes.legs.steps.distanceMeters",
    "routes.legs.steps.staticDuration",
    "routes.legs.steps.navigationInstruction",
])


@dataclass
class FetchOutcome:
    """Transport-level outcome of one HTTP call."""

    ok: bool
    status_code: Optional[int] = None
    body: Any = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timed_out: bool = False


class GoogleRoutingClient(RoutingProvider):
    """
    Client for Google Routes API v2 and the Distance Matrix API.

    The HTTP client is injected so one connection pool is shared for the
    whole process; the client never raises, every failure becomes a result
    with ``ok=False``.
    """

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        routes_url: str = "https://routes.googleapis.com/directions/v2:computeRoutes",
        matrix_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json",
        timeout: float = 10.0,
    ):
        """
        Initialize the routing client.

        Args:
            api_key: Google Cloud API key with Routes and Distance Matrix enabled
            http_client: Shared AsyncClient; one is created when omitted
            routes_url: computeRoutes endpoint
            matrix_url: Distance Matrix endpoint
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("Google routing client requires an API key")

        self.api_key = api_key
        self.routes_url = routes_url
        self.matrix_url = matrix_url
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

        logger.info("Google routing client initialized")

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.ROUTES_V2

    @property
    def supported_modes(self) -> frozenset:
        return frozenset(ROUTES_TRAVEL_MODES)

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def _fetch_json(self, method: str, url: str, **kwargs) -> FetchOutcome:
        """Perform one bounded HTTP call and decode JSON without raising."""
        try:
            response = await self._client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Routing provider timeout: {method} {url}")
            return FetchOutcome(
                ok=False,
                error="Upstream request timed out",
                details={"name": type(e).__name__, "message": str(e)},
                timed_out=True,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Routing provider request failed: {type(e).__name__}: {e}")
            return FetchOutcome(
                ok=False,
                error="Upstream request failed",
                details={"name": type(e).__name__, "message": str(e)},
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        return FetchOutcome(ok=True, status_code=response.status_code, body=body)

    def _routes_request(
        self,
        origin: Coordinate,
        destination: Coordinate,
        travel_mode: str,
        traffic_aware: bool,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "origin": {"location": {"latLng": {"latitude": origin.lat, "longitude": origin.lng}}},
            "destination": {"location": {"latLng": {"latitude": destination.lat, "longitude": destination.lng}}},
            "travelMode": travel_mode,
        }
        if traffic_aware:
            body["routingPreference"] = "TRAFFIC_AWARE"
            body["departureTime"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        return body

    async def _post_routes(self, body: Dict[str, Any], field_mask: str):
        outcome = await self._fetch_json(
            "POST",
            self.routes_url,
            json=body,
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": field_mask,
            },
        )
        if not outcome.ok:
            error = "Routes API timed out" if outcome.timed_out else "Routes API request failed"
            return None, (error, outcome.details)

        if not 200 <= outcome.status_code < 300:
            return None, (f"Routes API HTTP {outcome.status_code}", outcome.body)

        routes = outcome.body.get("routes") if isinstance(outcome.body, dict) else None
        if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            return None, ("Routes API returned no routes", outcome.body)

        return routes[0], None

    async def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> RouteResult:
        """
        Compute one route with the Routes API.

        When ``traffic_aware`` is set and the mode is DRIVE, ``duration`` is the
        traffic-aware value and ``staticDuration`` the free-flow value; both are
        reported, the static one as ``duration_seconds``.
        """
        travel_mode = ROUTES_TRAVEL_MODES.get(mode)
        if travel_mode is None:
            return RouteResult.failure(f"Unsupported mode: {mode}", provider=self.provider_type.value)

        use_traffic = traffic_aware and mode == TravelMode.DRIVE
        route, failure = await self._post_routes(
            self._routes_request(origin, destination, travel_mode, use_traffic),
            TRAFFIC_FIELD_MASK if use_traffic else ETA_FIELD_MASK,
        )
        if failure:
            error, details = failure
            logger.warning(f"Routes API failure for {mode.value}: {error}")
            return RouteResult.failure(error, details, provider=self.provider_type.value)

        duration = parse_duration(route.get("duration"))
        # Routes API omits distanceMeters for zero-length routes
        distance = parse_distance(route.get("distanceMeters", 0))
        if not duration or distance is None:
            return RouteResult.failure(
                "Routes API returned invalid duration/distance", route, provider=self.provider_type.value
            )

        static_duration = parse_duration(route.get("staticDuration")) if use_traffic else None
        if use_traffic and static_duration:
            return RouteResult(
                ok=True,
                duration_seconds=static_duration,
                duration_in_traffic_seconds=duration,
                static_duration_seconds=static_duration,
                distance_meters=distance,
                provider=self.provider_type.value,
            )

        return RouteResult(
            ok=True,
            duration_seconds=duration,
            distance_meters=distance,
            provider=self.provider_type.value,
        )

    async def compute_matrix(
        self,
        origin: Coordinate,
        destinations: List[Coordinate],
        mode: TravelMode,
    ) -> MatrixResult:
        """
        Compute one-to-many durations with the Distance Matrix API.

        Elements that the API could not resolve come back as ``ok=False``
        entries at the same index; the batch itself only fails on transport
        or top-level status errors.
        """
        provider = ProviderType.DIST_MATRIX.value
        dm_mode = MATRIX_TRAVEL_MODES.get(mode)
        if dm_mode is None:
            return MatrixResult.failure(f"Unsupported mode: {mode}", provider=provider)
        if not destinations:
            return MatrixResult(ok=True, results=[], provider=provider)

        params = {
            "origins": f"{origin.lat},{origin.lng}",
            "destinations": "|".join(f"{d.lat},{d.lng}" for d in destinations),
            "mode": dm_mode,
            "key": self.api_key,
        }
        outcome = await self._fetch_json("GET", self.matrix_url, params=params)
        if not outcome.ok:
            error = "Distance Matrix timed out" if outcome.timed_out else "Distance Matrix request failed"
            return MatrixResult.failure(error, outcome.details, provider=provider)

        body = outcome.body
        if not 200 <= outcome.status_code < 300:
            return MatrixResult.failure(f"Distance Matrix HTTP {outcome.status_code}", body, provider=provider)

        status = body.get("status") if isinstance(body, dict) else None
        if status != "OK":
            if status == "OVER_QUERY_LIMIT":
                logger.warning("Distance Matrix quota exceeded")
            return MatrixResult.failure(f"Distance Matrix status {status or 'unknown'}", body, provider=provider)

        rows = body.get("rows") or []
        elements = rows[0].get("elements") if rows and isinstance(rows[0], dict) else None
        if not isinstance(elements, list):
            return MatrixResult.failure("Distance Matrix response missing elements", body, provider=provider)

        results = []
        for index in range(len(destinations)):
            element = elements[index] if index < len(elements) else None
            results.append(self._parse_matrix_element(element))

        return MatrixResult(ok=True, results=results, provider=provider)

    def _parse_matrix_element(self, element: Any) -> MatrixElement:
        if not isinstance(element, dict) or element.get("status") != "OK":
            return MatrixElement(ok=False)
        duration = parse_duration(element.get("duration"))
        distance = parse_distance(element.get("distance"))
        if not duration or distance is None:
            return MatrixElement(ok=False)
        return MatrixElement(ok=True, duration_seconds=duration, distance_meters=distance)

    async def compute_directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> DirectionsResult:
        """Compute a full route with polyline and turn-by-turn steps."""
        provider = self.provider_type.value
        travel_mode = ROUTES_TRAVEL_MODES.get(mode)
        if travel_mode is None:
            return DirectionsResult.failure(f"Unsupported mode: {mode}", provider=provider)

        use_traffic = traffic_aware and mode == TravelMode.DRIVE
        route, failure = await self._post_routes(
            self._routes_request(origin, destination, travel_mode, use_traffic),
            DIRECTIONS_FIELD_MASK,
        )
        if failure:
            error, details = failure
            return DirectionsResult.failure(error, details, provider=provider)

        duration = parse_duration(route.get("duration"))
        # Routes API omits distanceMeters for zero-length routes
        distance = parse_distance(route.get("distanceMeters", 0))
        if not duration or distance is None:
            return DirectionsResult.failure(
                "Routes API returned invalid duration/distance", route, provider=provider
            )

        legs = route.get("legs") or []
        raw_steps = legs[0].get("steps") if legs and isinstance(legs[0], dict) else None
        steps = [s for s in (self._parse_step(raw) for raw in raw_steps or []) if s is not None]

        polyline = route.get("polyline") or {}
        return DirectionsResult(
            ok=True,
            duration_seconds=duration,
            distance_meters=distance,
            provider=provider,
            encoded_polyline=polyline.get("encodedPolyline"),
            steps=ensure_bounded_steps(steps),
        )

    def _parse_step(self, raw: Any) -> Optional[DirectionsStep]:
        if not isinstance(raw, dict):
            return None
        navigation = raw.get("navigationInstruction") or {}
        instruction = navigation.get("instructions")
        distance = parse_distance(raw.get("distanceMeters"))
        duration = parse_duration(raw.get("staticDuration") or raw.get("duration"))
        if not instruction and not distance and not duration:
            return None

        maneuver = str(navigation.get("maneuver") or "").upper()
        if maneuver == "DEPART":
            kind = "depart"
        elif maneuver.startswith("ARRIVE") or maneuver.startswith("DESTINATION"):
            kind = "arrive"
        else:
            kind = "continue"

        return DirectionsStep(
            maneuver=kind,
            instruction=instruction,
            distance_meters=distance,
            duration_seconds=duration,
        )
