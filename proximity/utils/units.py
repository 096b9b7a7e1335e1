"""
Unit parsing for values returned by routing providers.

The Routes API reports durations as protobuf strings (``"123s"``) while the
Distance Matrix API reports plain integers. Everything funnels through
:func:`parse_duration` and :func:`parse_distance`.
"""

import math
import re
from typing import Any, Optional

_DURATION_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*s?\s*$")


def parse_duration(value: Any) -> Optional[int]:
    """
    Parse a provider duration into whole seconds.

    Accepted shapes:
        - ``"123s"`` / ``"12.5s"`` (Routes API)
        - ``123`` / ``123.4`` / ``"123"`` (Distance Matrix and others)
        - ``{"value": 123}`` (Distance Matrix element objects)

    Returns:
        Rounded positive seconds, or None for missing, malformed,
        non-finite or non-positive values
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, dict):
        return parse_duration(value.get("value"))

    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if not match:
            return None
        seconds = float(match.group(1))
    else:
        return None

    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return int(round(seconds))


def parse_distance(value: Any) -> Optional[int]:
    """Parse a provider distance into whole meters (zero allowed)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return parse_distance(value.get("value"))
    if not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return int(round(value))


def minutes_label(seconds: int, suffix: str) -> str:
    """Human label such as ``"4 min on foot"`` (never below one minute)."""
    minutes = max(1, round(seconds / 60))
    return f"{minutes} min {suffix}"
