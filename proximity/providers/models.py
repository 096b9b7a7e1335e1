"""
Unified result models for all routing tiers.

Every tier (Routes API, Distance Matrix, local approximation) normalizes its
answer to these models. Failures are values (``ok=False``), never exceptions.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    """A WGS84 coordinate."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")

    model_config = {"frozen": True, "allow_inf_nan": False}


class RouteResult(BaseModel):
    """
    Normalized duration/distance for one origin/destination pair.

    ``duration_in_traffic_seconds`` is reported alongside the plain duration,
    never in place of it.
    """
    ok: bool = Field(..., description="Whether the tier produced a usable answer")
    duration_seconds: Optional[int] = Field(None, gt=0)
    distance_meters: Optional[int] = Field(None, ge=0)
    provider: Optional[str] = Field(None, description="Tier that produced the answer")
    duration_in_traffic_seconds: Optional[int] = Field(None, gt=0)
    static_duration_seconds: Optional[int] = Field(None, gt=0)
    error: Optional[str] = Field(None, description="Failure reason when ok is False")
    details: Optional[Any] = Field(None, description="Upstream payload or exception info")

    @classmethod
    def failure(cls, error: str, details: Any = None, provider: Optional[str] = None) -> "RouteResult":
        return cls(ok=False, error=error, details=details, provider=provider)

    def to_eta(self) -> Optional[Dict[str, Any]]:
        """Public ETA shape, or None for failures."""
        if not self.ok:
            return None
        eta = {
            "duration_seconds": self.duration_seconds,
            "distance_meters": self.distance_meters,
            "provider": self.provider,
        }
        if self.duration_in_traffic_seconds:
            eta["duration_in_traffic_seconds"] = self.duration_in_traffic_seconds
        return eta


class MatrixElement(BaseModel):
    """One destination of a batch lookup."""
    ok: bool
    duration_seconds: Optional[int] = Field(None, gt=0)
    distance_meters: Optional[int] = Field(None, ge=0)


class MatrixResult(BaseModel):
    """Batch result; ``results`` align with the requested destinations."""
    ok: bool
    results: List[MatrixElement] = Field(default_factory=list)
    provider: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Any] = None

    @classmethod
    def failure(cls, error: str, details: Any = None, provider: Optional[str] = None) -> "MatrixResult":
        return cls(ok=False, error=error, details=details, provider=provider)


class DirectionsStep(BaseModel):
    """A single navigation step."""
    maneuver: str = Field(default="continue", description="depart, arrive or continue")
    instruction: Optional[str] = None
    distance_meters: Optional[int] = Field(None, ge=0)
    duration_seconds: Optional[int] = Field(None, ge=0)


class DirectionsResult(BaseModel):
    """Full route with bounded step list."""
    ok: bool
    duration_seconds: Optional[int] = Field(None, gt=0)
    distance_meters: Optional[int] = Field(None, ge=0)
    provider: Optional[str] = None
    encoded_polyline: Optional[str] = None
    steps: List[DirectionsStep] = Field(default_factory=list)
    error: Optional[str] = None
    details: Optional[Any] = None

    @classmethod
    def failure(cls, error: str, details: Any = None, provider: Optional[str] = None) -> "DirectionsResult":
        return cls(ok=False, error=error, details=details, provider=provider)


def ensure_bounded_steps(
    steps: List[DirectionsStep], destination_label: Optional[str] = None
) -> List[DirectionsStep]:
    """
    Make sure a step list starts with ``depart`` and ends with ``arrive``.

    Missing bounds are synthesized with zero distance/duration so downstream
    consumers can rely on a non-empty, properly bounded list.
    """
    bounded = list(steps)
    if not bounded or bounded[0].maneuver != "depart":
        bounded.insert(
            0,
            DirectionsStep(maneuver="depart", instruction="Depart", distance_meters=0, duration_seconds=0),
        )
    if len(bounded) < 2 or bounded[-1].maneuver != "arrive":
        bounded.append(
            DirectionsStep(
                maneuver="arrive",
                instruction=f"Arrive at {destination_label}" if destination_label else "Arrive at destination",
                distance_meters=0,
                duration_seconds=0,
            )
        )
    return bounded
