from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from .base import APIBaseModel, UTCDatetime


class PointIn(BaseModel):
    """
    Raw coordinate from a request body.

    Values are validated by the services (``validate_point``) so that bad
    coordinates produce a 400 with a readable message instead of a 422.
    """
    lat: Any = Field(None, description="Latitude in degrees")
    lng: Any = Field(None, description="Longitude in degrees")


class EtaRequest(BaseModel):
    origin: Optional[PointIn] = Field(None, description="Route origin")
    destination: Optional[PointIn] = Field(None, description="Route destination")
    modes: Optional[List[str]] = Field(None, description="Modes to resolve (default WALK, TRANSIT, DRIVE; max 5)")
    mode: Optional[str] = Field(None, description="Single mode shorthand, used when modes is omitted")
    ttl_seconds: Optional[Any] = Field(None, description="Cache window in seconds (clamped 60-300, default 120)")
    strict: bool = Field(False, description="Fail instead of falling back to the local approximation")


class DirectionsRequest(BaseModel):
    origin: Optional[PointIn] = Field(None, description="Route origin")
    destination: Optional[PointIn] = Field(None, description="Route destination")
    mode: str = Field("WALK", description="Travel mode")
    strict: bool = Field(False, description="Fail instead of falling back to the local approximation")


class TravelTimeRequest(BaseModel):
    origin: Optional[PointIn] = Field(None, description="Route origin")
    destination: Optional[PointIn] = Field(None, description="Route destination")


class PresenceUpdateRequest(BaseModel):
    lat: Any = Field(None, description="Latitude in degrees")
    lng: Any = Field(None, description="Longitude in degrees")
    accuracy_m: Optional[Any] = Field(None, description="Reported accuracy in meters (clamped 0-5000)")
    approximate: bool = Field(False, description="Store the location snapped to a ~1 km grid")


class NearbyQuery(BaseModel):
    """Raw ranking parameters; clamping happens in the ranking service."""
    lat: Any = None
    lng: Any = None
    accuracy_m: Optional[Any] = None
    approximate: bool = False
    radius_m: Optional[Any] = None
    limit: Optional[Any] = None
    eta_top_n: Optional[Any] = None
    eta_ttl_seconds: Optional[Any] = None


class PublicProfile(APIBaseModel):
    """Subset of a profile that other users may see."""
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    availability_status: Optional[str] = None
    updated_at: Optional[UTCDatetime] = None


class Candidate(BaseModel):
    user_id: str
    profile: Optional[PublicProfile] = None
    last_lat: Optional[float] = Field(None, description="Bucketed latitude")
    last_lng: Optional[float] = Field(None, description="Bucketed longitude")
    distance_meters: int = Field(..., ge=0)
    eta_seconds: Optional[int] = None
    eta_mode: Optional[str] = None


class RankingResult(BaseModel):
    candidates: List[Candidate] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        """Response body; ``warnings`` is only present when non-empty."""
        body: Dict[str, Any] = {
            "candidates": [c.model_dump(mode="json") for c in self.candidates],
        }
        if self.warnings:
            body["warnings"] = list(self.warnings)
        return body


class PresenceRecord(APIBaseModel):
    """Merged view of the private and public presence projections."""
    user_id: str
    precise_lat: Optional[float] = None
    precise_lng: Optional[float] = None
    bucketed_lat: Optional[float] = None
    bucketed_lng: Optional[float] = None
    accuracy_m: Optional[int] = None
    is_online: bool = False
    privacy_hide_proximity: bool = False
    updated_at: Optional[UTCDatetime] = None


class NearbyPresence(BaseModel):
    """A public presence row with its distance from the query point."""
    user_id: str
    bucketed_lat: float
    bucketed_lng: float
    distance_meters: int


class TravelTimeOption(BaseModel):
    duration_seconds: int
    label: str


class TravelTimeResponse(BaseModel):
    walking: Optional[TravelTimeOption] = None
    driving: Optional[TravelTimeOption] = None
    bicycling: Optional[TravelTimeOption] = None
    uber: Optional[TravelTimeOption] = None
    fastest: Optional[TravelTimeOption] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class PresenceUpdateResponse(BaseModel):
    ok: bool
    persisted: bool = Field(..., description="Both projections were written")
    privacy_hide_proximity: bool = False


class Identity(BaseModel):
    """Authenticated caller, as supplied by the external auth layer."""
    user_id: str
    email: Optional[str] = None
    subscription_tier: Optional[str] = None
    default_travel_mode: Optional[str] = None
    ip: Optional[str] = None
