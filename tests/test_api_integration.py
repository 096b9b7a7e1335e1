"""
HTTP-level tests for the proximity API.

The app is built around a container wired with in-memory doubles, so the
full middleware / auth / router / service stack runs without PostgreSQL or
network access.
"""

import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from unittest.mock import AsyncMock, Mock

from proximity.container import build_services
from proximity.main import create_app
from proximity.models.proximity_models import NearbyPresence
from proximity.providers.manager import RoutingProviderManager
from proximity.providers.settings import ProximitySettings
from proximity.services.profile_service import ProfileService
from proximity.services.ranking_service import CandidateRankingService
from proximity.services.travel_time_service import TravelTimeService

SECRET = "test-secret"
LONDON_EYE = {"lat": 51.5033, "lng": -0.1196}
TOWER_BRIDGE = {"lat": 51.5055, "lng": -0.0754}

pytestmark = pytest.mark.integration


def _token(sub="user-1", tier="PAID", secret=SECRET, expires_in=3600, **claims):
    payload = {"sub": sub, "email": f"{sub}@example.com", "exp": int(time.time()) + expires_in}
    if tier:
        payload["user_metadata"] = {"subscription_tier": tier}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def _auth(token=None):
    return {"Authorization": f"Bearer {token or _token()}"}


def _unreadable_profiles():
    return ProfileService(Mock(side_effect=RuntimeError("db down")))


@pytest.fixture
def settings():
    return ProximitySettings(_env_file=None, AUTH_JWT_SECRET=SECRET, GOOGLE_MAPS_API_KEY=None)


@pytest.fixture
def container(settings, provider, eta_cache, allow_limiter):
    manager = RoutingProviderManager(primary=provider)
    container = build_services(settings, manager, session_maker=None)
    container.travel_time = TravelTimeService(manager, eta_cache, allow_limiter)
    return container


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


class TestHealth:
    """Tests for service endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "routing_configured": True}

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_generated_request_id(self, client):
        response = client.get("/")
        assert len(response.headers["X-Request-ID"]) == 8


class TestAuth:
    """Tests for bearer token handling."""

    def test_missing_token(self, client):
        response = client.post("/api/routing/etas", json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE})
        assert response.status_code == 401
        body = response.json()
        assert body["message"] == "Missing Authorization bearer token"
        assert body["request_id"]

    def test_wrong_secret(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE},
            headers=_auth(_token(secret="other-secret")),
        )
        assert response.status_code == 401

    def test_expired_token(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE},
            headers=_auth(_token(expires_in=-60)),
        )
        assert response.status_code == 401


class TestEtasEndpoint:
    """Tests for POST /api/routing/etas."""

    def test_default_modes(self, client, provider):
        response = client.post(
            "/api/routing/etas", json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE}, headers=_auth()
        )
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"walk", "transit", "drive"}
        assert body["walk"]["duration_seconds"] == 900
        assert len(provider.route_calls) == 3

    def test_single_mode_shorthand(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "mode": "bike"},
            headers=_auth(),
        )
        body = response.json()
        assert body["bicycle"]["duration_seconds"] == 420
        assert body["walk"] is None

    def test_invalid_origin(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": {"lat": 123, "lng": 0}, "destination": TOWER_BRIDGE},
            headers=_auth(),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidCoordinateError"

    def test_missing_destination(self, client):
        response = client.post("/api/routing/etas", json={"origin": LONDON_EYE}, headers=_auth())
        assert response.status_code == 400

    def test_unknown_modes(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "modes": ["HOVERCRAFT"]},
            headers=_auth(),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "UnsupportedModeError"

    def test_rate_limited(self, client, container, deny_limiter):
        container.travel_time.limiter = deny_limiter
        response = client.post(
            "/api/routing/etas", json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE}, headers=_auth()
        )
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["details"] == {"remaining": 0}

    def test_strict_failure(self, settings, failing_provider, eta_cache, allow_limiter):
        manager = RoutingProviderManager(primary=failing_provider)
        container = build_services(settings, manager, session_maker=None)
        container.travel_time = TravelTimeService(manager, eta_cache, allow_limiter)
        client = TestClient(create_app(container))

        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "modes": ["WALK"], "strict": True},
            headers=_auth(),
        )
        assert response.status_code == 502
        assert response.json()["error_type"] == "RoutingUnavailableError"

    def test_validation_error(self, client):
        response = client.post(
            "/api/routing/etas",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "strict": "definitely"},
            headers=_auth(),
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "validation_error"


class TestDirectionsEndpoint:
    """Tests for POST /api/routing/directions."""

    def test_directions(self, client):
        response = client.post(
            "/api/routing/directions",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "mode": "WALK"},
            headers=_auth(),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["steps"][0]["maneuver"] == "depart"
        assert body["steps"][-1]["maneuver"] == "arrive"

    def test_unknown_mode(self, client):
        response = client.post(
            "/api/routing/directions",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE, "mode": "HOVERCRAFT"},
            headers=_auth(),
        )
        assert response.status_code == 400


class TestTravelTimeEndpoint:
    """Tests for POST /api/travel-time."""

    def test_anonymous_caller(self, client, allow_limiter):
        response = client.post(
            "/api/travel-time",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE},
            headers={"X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["walking"]["label"] == "15 min on foot"
        assert body["fastest"]["label"] == "5 min by cab"
        assert body["meta"] == {"provider": "google"}
        assert allow_limiter.calls[0]["bucket_key"].startswith("travel_time:198.51.100.4:")
        assert allow_limiter.calls[0]["actor_id"] is None

    def test_authenticated_caller_is_recorded(self, client, allow_limiter):
        client.post("/api/travel-time", json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE}, headers=_auth())
        assert allow_limiter.calls[0]["actor_id"] == "user-1"

    def test_bad_token_is_rejected(self, client):
        response = client.post(
            "/api/travel-time",
            json={"origin": LONDON_EYE, "destination": TOWER_BRIDGE},
            headers=_auth("not-a-jwt"),
        )
        assert response.status_code == 401


class TestNearbyEndpoint:
    """Tests for GET /api/nearby."""

    def test_without_presence_store(self, client):
        response = client.get("/api/nearby", params={"lat": 51.5033, "lng": -0.1196}, headers=_auth())
        assert response.status_code == 200
        assert response.json() == {
            "candidates": [],
            "warnings": ["presence store unavailable; no candidates"],
        }

    def test_paid_viewer_gets_etas(self, client, container, eta_cache, allow_limiter):
        presence = Mock()
        presence.upsert = AsyncMock(return_value=True)
        presence.find_nearby = AsyncMock(return_value=[
            NearbyPresence(user_id="ana", bucketed_lat=51.507, bucketed_lng=-0.128, distance_meters=700),
        ])
        profiles = Mock()
        profiles.get_profile = AsyncMock(return_value=None)
        profiles.get_public_profiles = AsyncMock(return_value={})
        container.ranking = CandidateRankingService(
            presence=presence, profiles=profiles, cache=eta_cache, limiter=allow_limiter, manager=container.manager,
        )

        response = client.get(
            "/api/nearby",
            params={"lat": "51.5033", "lng": "-0.1196", "radius_m": "3000"},
            headers=_auth(_token(default_travel_mode="DRIVE")),
        )

        assert response.status_code == 200
        body = response.json()
        assert "warnings" not in body
        [candidate] = body["candidates"]
        assert candidate["user_id"] == "ana"
        assert candidate["eta_seconds"] == 300
        assert candidate["eta_mode"] == "DRIVE"
        assert presence.find_nearby.call_args.args[2] == 3000

    def test_profile_store_down_hides_viewer(self, client, container, eta_cache, allow_limiter):
        """Without the privacy flag the viewer is neither stored nor shown anyone."""
        presence = Mock()
        presence.upsert = AsyncMock(return_value=True)
        presence.find_nearby = AsyncMock(return_value=[])
        container.ranking = CandidateRankingService(
            presence=presence, profiles=_unreadable_profiles(), cache=eta_cache,
            limiter=allow_limiter, manager=container.manager,
        )

        response = client.get("/api/nearby", params={"lat": 51.5074, "lng": -0.1278}, headers=_auth())

        assert response.status_code == 200
        assert response.json() == {
            "candidates": [],
            "warnings": ["profile store unavailable; location not recorded"],
        }
        presence.upsert.assert_not_called()
        presence.find_nearby.assert_not_called()

    def test_invalid_viewer(self, client):
        response = client.get("/api/nearby", params={"lat": "north", "lng": 0}, headers=_auth())
        assert response.status_code == 400

    def test_requires_auth(self, client):
        assert client.get("/api/nearby", params={"lat": 51.5, "lng": -0.12}).status_code == 401


class TestPresenceEndpoint:
    """Tests for /api/presence."""

    def test_update_without_store(self, client):
        response = client.post("/api/presence", json={"lat": 51.5033, "lng": -0.1196}, headers=_auth())
        assert response.status_code == 200
        assert response.json() == {"ok": True, "persisted": False, "privacy_hide_proximity": False}

    def test_update_rejects_bad_coordinate(self, client):
        response = client.post("/api/presence", json={"lat": 51.5}, headers=_auth())
        assert response.status_code == 400

    def test_me_without_presence(self, client):
        response = client.get("/api/presence/me", headers=_auth())
        assert response.status_code == 404

    def test_update_with_profile_store_down(self, client, container):
        """A ping is refused rather than stored with an unknown privacy flag."""
        container.profiles = _unreadable_profiles()
        container.presence = Mock()
        container.presence.upsert = AsyncMock(return_value=True)

        response = client.post("/api/presence", json={"lat": 51.5074, "lng": -0.1278}, headers=_auth())

        assert response.status_code == 503
        assert response.json()["error_type"] == "StoreUnavailableError"
        container.presence.upsert.assert_not_called()
