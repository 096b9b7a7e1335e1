"""
Base interfaces and abstract classes for routing providers.

This module defines the contract every routing tier implements so that the
manager can try the next tier without special-casing any of them.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from .models import Coordinate, DirectionsResult, MatrixResult, RouteResult


class ProviderType(Enum):
    """Identifiers reported in the ``provider`` field of every result."""
    ROUTES_V2 = "ROUTES_V2"
    DIST_MATRIX = "DIST_MATRIX"
    APPROX = "approx"


class TravelMode(Enum):
    """Supported transport modes."""
    WALK = "WALK"
    TRANSIT = "TRANSIT"
    DRIVE = "DRIVE"
    BICYCLE = "BICYCLE"
    TWO_WHEELER = "TWO_WHEELER"

    @property
    def response_key(self) -> str:
        """Key used for this mode in per-mode ETA responses."""
        return self.value.lower()


_MODE_ALIASES = {
    "WALK": TravelMode.WALK,
    "WALKING": TravelMode.WALK,
    "FOOT": TravelMode.WALK,
    "TRANSIT": TravelMode.TRANSIT,
    "DRIVE": TravelMode.DRIVE,
    "DRIVING": TravelMode.DRIVE,
    "CAR": TravelMode.DRIVE,
    "BICYCLE": TravelMode.BICYCLE,
    "BICYCLING": TravelMode.BICYCLE,
    "BIKE": TravelMode.BICYCLE,
    "CYCLING": TravelMode.BICYCLE,
    "TWO_WHEELER": TravelMode.TWO_WHEELER,
    "TWO-WHEELER": TravelMode.TWO_WHEELER,
    "TWOWHEELER": TravelMode.TWO_WHEELER,
}


def normalize_mode(value) -> Optional[TravelMode]:
    """
    Normalize user input into a TravelMode.

    Args:
        value: Mode name, alias or TravelMode (case-insensitive)

    Returns:
        TravelMode, or None when the value is not a known mode
    """
    if isinstance(value, TravelMode):
        return value
    if not isinstance(value, str):
        return None
    return _MODE_ALIASES.get(value.strip().upper())


class RoutingProvider(ABC):
    """
    Abstract base class for routing tiers.

    Implementations must never raise across this boundary: every failure is
    returned as a result with ``ok=False``.
    """

    @abstractmethod
    async def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> RouteResult:
        """
        Compute duration and distance for a single origin/destination pair.

        Args:
            origin: Starting coordinate
            destination: Ending coordinate
            mode: Transport mode
            traffic_aware: Request a traffic-aware duration (DRIVE only)

        Returns:
            RouteResult, ``ok=False`` with an error reason on failure
        """
        pass

    @abstractmethod
    async def compute_matrix(
        self,
        origin: Coordinate,
        destinations: List[Coordinate],
        mode: TravelMode,
    ) -> MatrixResult:
        """
        Compute durations from one origin to many destinations.

        Returns:
            MatrixResult whose ``results`` align index-by-index with ``destinations``
        """
        pass

    @abstractmethod
    async def compute_directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode,
        traffic_aware: bool = False,
    ) -> DirectionsResult:
        """Compute a full route with turn-by-turn steps."""
        pass

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider type identifier."""
        pass

    @property
    @abstractmethod
    def supported_modes(self) -> frozenset:
        """Modes this tier can answer for."""
        pass

    def supports(self, mode: TravelMode) -> bool:
        return mode in self.supported_modes

    async def close(self) -> None:
        """Release network resources (no-op for local tiers)."""
        return None
