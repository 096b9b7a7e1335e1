"""
Geographic utility functions for distance, bucketing and cache key derivation.

This module contains pure functions with no dependencies on providers,
stores or services. All functions are stateless and can be tested independently.
"""

import hashlib
import math
from typing import Any, Optional, Tuple

from proximity.exceptions import InvalidCoordinateError

# Decimal precision per call-site
ETA_BUCKET_DECIMALS = 2  # ~1.1 km cells, used for ETA caching and ranking origin
PRESENCE_BUCKET_DECIMALS = 3  # ~111 m cells, used for public presence rows

EARTH_RADIUS_METERS = 6371000


def calculate_distance_meters(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """
    Calculate the distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lon1_rad = math.radians(lon1)
    lat2_rad = math.radians(lat2)
    lon2_rad = math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = (
        math.sin(dlat / 2) * math.sin(dlat / 2)
        + math.cos(lat1_rad)
        * math.cos(lat2_rad)
        * math.sin(dlon / 2)
        * math.sin(dlon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def parse_number(value: Any) -> Optional[float]:
    """Parse a query/body value into a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def validate_point(lat: Any, lng: Any, name: str = "point") -> Tuple[float, float]:
    """
    Validate a coordinate pair.

    Args:
        lat: Latitude (any numeric-like value)
        lng: Longitude (any numeric-like value)
        name: Label used in the error message (e.g. "origin")

    Returns:
        Tuple of (lat, lng) as floats

    Raises:
        InvalidCoordinateError: If either value is missing, non-finite or
            outside WGS84 ranges
    """
    lat_f = parse_number(lat)
    lng_f = parse_number(lng)
    if lat_f is None or lng_f is None:
        raise InvalidCoordinateError(f"Invalid {name} lat/lng")
    if not (-90.0 <= lat_f <= 90.0) or not (-180.0 <= lng_f <= 180.0):
        raise InvalidCoordinateError(f"Invalid {name} lat/lng: out of range")
    return lat_f, lng_f


def bucket_lat_lng(lat: float, lng: float, decimals: int = ETA_BUCKET_DECIMALS) -> str:
    """
    Round a coordinate to a fixed grid and return its canonical bucket string.

    The output always carries exactly ``decimals`` fraction digits, so
    re-bucketing a parsed bucket yields the same string.

    Args:
        lat: Latitude in degrees
        lng: Longitude in degrees
        decimals: Grid precision (2 ~ 1.1 km, 3 ~ 111 m)

    Returns:
        Bucket string such as ``"51.51,-0.13"``
    """
    if not math.isfinite(lat) or not math.isfinite(lng):
        raise InvalidCoordinateError("Cannot bucket non-finite coordinates")
    if decimals < 0:
        raise ValueError("decimals must be >= 0")

    lat_b = round(lat, decimals)
    lng_b = round(lng, decimals)
    # Avoid "-0.00" and "0.00" producing different buckets for the same cell
    lat_b = lat_b + 0.0
    lng_b = lng_b + 0.0
    return f"{lat_b:.{decimals}f},{lng_b:.{decimals}f}"


def parse_bucket(bucket: str) -> Tuple[float, float]:
    """Split a bucket string back into its (lat, lng) floats."""
    try:
        lat_s, lng_s = bucket.split(",")
        return float(lat_s), float(lng_s)
    except (AttributeError, ValueError):
        raise InvalidCoordinateError(f"Malformed bucket: {bucket!r}")


def snap_to_bucket(
    lat: float, lng: float, decimals: int = ETA_BUCKET_DECIMALS
) -> Tuple[float, float]:
    """Return the coordinate of the bucket cell containing (lat, lng)."""
    return parse_bucket(bucket_lat_lng(lat, lng, decimals))


def compute_time_slice(now_ms: int, ttl_seconds: int) -> int:
    """
    Map a timestamp to its TTL window index.

    Two requests in the same window share the slice; the first request of
    the next window always gets a new slice.
    """
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")
    return int(now_ms // (ttl_seconds * 1000))


def cache_key_for(
    origin_bucket: str, dest_bucket: str, mode: str, time_slice: int
) -> str:
    """
    Derive the routing cache key for a bucketed route in a time slice.

    The key is a SHA-256 digest, so untrusted bucket strings can never
    collide with or inject into other keys.
    """
    raw = f"{origin_bucket}|{dest_bucket}|{mode}|{time_slice}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def bounding_box(
    lat: float, lng: float, radius_m: float
) -> Tuple[float, float, float, float]:
    """
    Compute a (min_lat, max_lat, min_lng, max_lng) box enclosing a circle.

    Used as a cheap SQL prefilter before exact haversine filtering. A box
    that crosses the antimeridian wraps, so ``min_lng > max_lng`` and the
    box covers the two ranges [min_lng, 180] and [-180, max_lng].
    """
    lat_delta = math.degrees(radius_m / EARTH_RADIUS_METERS)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        lng_delta = 180.0
    else:
        lng_delta = math.degrees(radius_m / (EARTH_RADIUS_METERS * cos_lat))

    if lng_delta >= 180.0 or abs(lat) + lat_delta >= 90.0:
        # Circle spans every longitude (or reaches a pole)
        min_lng, max_lng = -180.0, 180.0
    else:
        min_lng = lng - lng_delta
        max_lng = lng + lng_delta
        if min_lng < -180.0:
            min_lng += 360.0
        if max_lng > 180.0:
            max_lng -= 360.0

    return (
        max(-90.0, lat - lat_delta),
        min(90.0, lat + lat_delta),
        min_lng,
        max_lng,
    )


def clamp_int(value: Any, minimum: int, maximum: int, default: Optional[int]) -> Optional[int]:
    """
    Parse ``value`` as an integer and clamp it into [minimum, maximum].

    Missing or unparseable values return ``default`` unchanged.
    """
    number = parse_number(value)
    if number is None:
        return default
    return max(minimum, min(maximum, int(number)))
