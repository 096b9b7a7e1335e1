"""
Pytest configuration and shared fixtures.

Stores are exercised through an in-memory session double; routing tiers
through a recording provider, so no test needs PostgreSQL or the network.
"""

import os
from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from proximity.providers.base import ProviderType, RoutingProvider, TravelMode
from proximity.providers.models import (
    Coordinate,
    DirectionsResult,
    DirectionsStep,
    MatrixElement,
    MatrixResult,
    RouteResult,
    ensure_bounded_steps,
)
from proximity.services.eta_cache import EtaCacheEntry
from proximity.services.rate_limiter import RateLimitDecision


class FakeSession:
    """Async session double that records commit/rollback."""

    def __init__(self):
        self.commit = AsyncMock()
        self.rollback = AsyncMock()
        self.execute = AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class RecordingProvider(RoutingProvider):
    """Routing tier double that answers from fixed durations and records calls."""

    def __init__(
        self,
        durations: Optional[Dict[TravelMode, int]] = None,
        fail: bool = False,
        provider: ProviderType = ProviderType.ROUTES_V2,
    ):
        self.durations = durations or {
            TravelMode.WALK: 900,
            TravelMode.TRANSIT: 600,
            TravelMode.DRIVE: 300,
            TravelMode.BICYCLE: 420,
            TravelMode.TWO_WHEELER: 280,
        }
        self.fail = fail
        self._provider = provider
        self.route_calls: List[tuple] = []
        self.matrix_calls: List[tuple] = []
        self.directions_calls: List[tuple] = []

    @property
    def provider_type(self) -> ProviderType:
        return self._provider

    @property
    def supported_modes(self) -> frozenset:
        return frozenset(self.durations)

    async def compute_route(self, origin, destination, mode, traffic_aware=False):
        self.route_calls.append((origin, destination, mode, traffic_aware))
        if self.fail:
            return RouteResult.failure("Routes API HTTP 503", provider=self._provider.value)
        return RouteResult(
            ok=True,
            duration_seconds=self.durations[mode],
            distance_meters=1200,
            provider=self._provider.value,
        )

    async def compute_matrix(self, origin, destinations, mode):
        self.matrix_calls.append((origin, list(destinations), mode))
        if self.fail:
            return MatrixResult.failure("Distance Matrix status UNKNOWN_ERROR", provider=ProviderType.DIST_MATRIX.value)
        results = [
            MatrixElement(ok=True, duration_seconds=self.durations[mode] + 60 * index, distance_meters=500 * (index + 1))
            for index, _ in enumerate(destinations)
        ]
        return MatrixResult(ok=True, results=results, provider=ProviderType.DIST_MATRIX.value)

    async def compute_directions(self, origin, destination, mode, traffic_aware=False):
        self.directions_calls.append((origin, destination, mode, traffic_aware))
        if self.fail:
            return DirectionsResult.failure("Routes API HTTP 503", provider=self._provider.value)
        return DirectionsResult(
            ok=True,
            duration_seconds=self.durations[mode],
            distance_meters=1200,
            provider=self._provider.value,
            encoded_polyline="abc",
            steps=ensure_bounded_steps([DirectionsStep(instruction="Head north", distance_meters=1200, duration_seconds=10)]),
        )


class InMemoryEtaCache:
    """Dict-backed stand-in for EtaCacheStore."""

    def __init__(self):
        self.entries: Dict[str, EtaCacheEntry] = {}
        self.get_calls = 0
        self.put_calls: List[List[EtaCacheEntry]] = []

    @property
    def enabled(self) -> bool:
        return True

    async def get(self, keys, now=None):
        self.get_calls += 1
        now = now or datetime.now(timezone.utc)
        return {
            key: self.entries[key]
            for key in keys
            if key in self.entries and self.entries[key].expires_at > now
        }

    async def put(self, entries):
        written = [e for e in entries if e is not None and e.is_valid]
        self.put_calls.append(written)
        for entry in written:
            self.entries[entry.cache_key] = entry
        return len(written)


class StaticLimiter:
    """Rate limiter double returning a fixed decision."""

    def __init__(self, allowed: bool = True, remaining: Optional[int] = 10):
        self.decision = RateLimitDecision(allowed=allowed, remaining=remaining)
        self.calls: List[dict] = []

    async def check(self, **kwargs):
        self.calls.append(kwargs)
        return self.decision


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def session_maker(session):
    """Callable returning the shared FakeSession, like async_sessionmaker."""
    return Mock(return_value=session)


@pytest.fixture
def sample_points():
    """Well-known coordinates used across tests."""
    return {
        "london_eye": Coordinate(lat=51.5033, lng=-0.1196),
        "tower_bridge": Coordinate(lat=51.5055, lng=-0.0754),
        "piccadilly": Coordinate(lat=51.5101, lng=-0.1340),
        "null_island": Coordinate(lat=0.0, lng=0.0),
    }


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def failing_provider():
    return RecordingProvider(fail=True)


@pytest.fixture
def eta_cache():
    return InMemoryEtaCache()


@pytest.fixture
def allow_limiter():
    return StaticLimiter(allowed=True)


@pytest.fixture
def deny_limiter():
    return StaticLimiter(allowed=False, remaining=0)


@pytest.fixture
def clean_env():
    """Clear routing/auth environment variables and reset cached settings."""
    from proximity.providers.settings import reset_settings

    keys = [
        "GOOGLE_MAPS_API_KEY",
        "ROUTES_DRIVE_TRAFFIC_AWARE",
        "RATE_LIMIT_FAIL_OPEN",
        "RATE_LIMIT_ETAS_PER_MINUTE",
        "AUTH_JWT_SECRET",
    ]
    original_values = {key: os.environ.pop(key, None) for key in keys}
    reset_settings()

    yield

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value
    reset_settings()


@pytest.fixture
def provider_factory():
    """Build RecordingProvider instances with custom durations or failures."""
    return RecordingProvider


@pytest.fixture
def limiter_factory():
    return StaticLimiter
