"""
Tests for CandidateRankingService.

Presence and profile lookups are replaced with AsyncMocks; routing goes
through a RoutingProviderManager around the recording provider.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, Mock, patch

from proximity.exceptions import InvalidCoordinateError
from proximity.models.proximity_models import Candidate, Identity, NearbyPresence, NearbyQuery, PublicProfile
from proximity.providers.manager import RoutingProviderManager
from proximity.services.eta_cache import build_entry
from proximity.services.profile_service import ProfileService
from proximity.services.ranking_service import (
    WARNING_NOT_CONFIGURED,
    WARNING_PRESENCE_UNAVAILABLE,
    WARNING_PROFILE_UNAVAILABLE,
    WARNING_PROVIDER_UNAVAILABLE,
    WARNING_RATE_LIMITED,
    CandidateRankingService,
    sort_candidates,
)
from proximity.utils.geo_utils import bucket_lat_lng, cache_key_for, compute_time_slice

NOW_MS = 1_772_366_400_000
VIEWER = (51.5033, -0.1196)


def _nearby(user_id, lat, lng, distance):
    return NearbyPresence(user_id=user_id, bucketed_lat=lat, bucketed_lng=lng, distance_meters=distance)


DEFAULT_NEARBY = [
    _nearby("ana", 51.507, -0.128, 700),
    _nearby("bob", 51.515, -0.141, 1900),
    _nearby("cai", 51.489, -0.098, 2200),
]


def _profile(tier="PAID", mode="DRIVE", hidden=False):
    return SimpleNamespace(subscription_tier=tier, default_travel_mode=mode, privacy_hide_proximity=hidden)


@pytest.fixture
def presence():
    presence = Mock()
    presence.upsert = AsyncMock(return_value=True)
    presence.find_nearby = AsyncMock(return_value=list(DEFAULT_NEARBY))
    return presence


@pytest.fixture
def profiles():
    profiles = Mock()
    profiles.get_profile = AsyncMock(return_value=_profile())
    profiles.get_public_profiles = AsyncMock(return_value={"ana": PublicProfile(full_name="Ana")})
    return profiles


@pytest.fixture
def viewer():
    return Identity(user_id="viewer", ip="203.0.113.7")


def _service(presence, profiles, cache, limiter, provider=None):
    return CandidateRankingService(
        presence=presence,
        profiles=profiles,
        cache=cache,
        limiter=limiter,
        manager=RoutingProviderManager(primary=provider),
    )


def _query(**kwargs):
    return NearbyQuery(lat=VIEWER[0], lng=VIEWER[1], **kwargs)


class TestSortCandidates:
    """Tests for the final ordering."""

    def test_eta_then_distance_with_unknown_last(self):
        candidates = [
            Candidate(user_id="a", eta_seconds=120, distance_meters=500),
            Candidate(user_id="b", eta_seconds=None, distance_meters=100),
            Candidate(user_id="c", eta_seconds=120, distance_meters=300),
        ]
        assert [c.user_id for c in sort_candidates(candidates)] == ["c", "a", "b"]


class TestRankTiers:
    """Tests for tier gating."""

    @pytest.mark.asyncio
    async def test_free_viewer_never_gets_etas(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        profiles.get_profile.return_value = _profile(tier="FREE")
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert [c.user_id for c in result.candidates] == ["ana", "bob", "cai"]
        assert all(c.eta_seconds is None for c in result.candidates)
        assert result.warnings == []
        assert provider.matrix_calls == []
        assert allow_limiter.calls == []
        assert result.candidates[0].profile.full_name == "Ana"

    @pytest.mark.asyncio
    async def test_tier_from_claims_when_profile_missing(self, presence, profiles, eta_cache, allow_limiter, provider):
        profiles.get_profile.return_value = None
        viewer = Identity(user_id="viewer", subscription_tier="paid")
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert len(provider.matrix_calls) == 1
        assert provider.matrix_calls[0][2].value == "WALK"
        assert result.candidates[0].eta_mode == "WALK"

    @pytest.mark.asyncio
    async def test_paid_without_routing_is_distance_only(self, presence, profiles, eta_cache, allow_limiter, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter, provider=None)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.warnings == [WARNING_NOT_CONFIGURED]
        assert all(c.eta_seconds is None and c.eta_mode == "DRIVE" for c in result.candidates)
        assert [c.user_id for c in result.candidates] == ["ana", "bob", "cai"]


class TestRankWithEtas:
    """Tests for the paid path."""

    @pytest.mark.asyncio
    async def test_resolves_missing_etas_in_one_batch(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert len(provider.matrix_calls) == 1
        origin, destinations, mode = provider.matrix_calls[0]
        assert len(destinations) == 3
        assert mode.value == "DRIVE"
        assert [c.eta_seconds for c in result.candidates] == [300, 360, 420]
        assert result.warnings == []
        assert len(eta_cache.put_calls) == 1 and len(eta_cache.put_calls[0]) == 3
        assert allow_limiter.calls[0]["bucket_key"] == f"nearby:viewer:203.0.113.7:{NOW_MS // 60000}"

    @pytest.mark.asyncio
    async def test_cache_hits_skip_provider_and_limiter(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)
        await service.rank(viewer, _query(), now_ms=NOW_MS)
        provider.matrix_calls.clear()
        allow_limiter.calls.clear()

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert provider.matrix_calls == []
        assert allow_limiter.calls == []
        assert all(c.eta_seconds is not None for c in result.candidates)

    @pytest.mark.asyncio
    async def test_eta_beats_distance(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        """A farther candidate with a cached shorter ETA should rank first."""
        origin_bucket = bucket_lat_lng(*VIEWER, 2)
        dest_bucket = bucket_lat_lng(51.489, -0.098, 2)
        key = cache_key_for(origin_bucket, dest_bucket, "DRIVE", compute_time_slice(NOW_MS, 300))
        eta_cache.entries[key] = build_entry(
            key, origin_bucket, dest_bucket, "DRIVE", 60, 2200, "DIST_MATRIX", 300,
            now=datetime.now(timezone.utc),
        )
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.candidates[0].user_id == "cai"
        assert result.candidates[0].eta_seconds == 60
        # Only the two misses went to the provider
        assert len(provider.matrix_calls[0][1]) == 2

    @pytest.mark.asyncio
    async def test_same_bucket_destinations_are_deduplicated(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        presence.find_nearby.return_value = [
            _nearby("ana", 51.507, -0.128, 700),
            _nearby("dee", 51.508, -0.127, 720),
        ]
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert len(provider.matrix_calls[0][1]) == 1
        assert result.candidates[0].eta_seconds == result.candidates[1].eta_seconds == 300
        assert [c.user_id for c in result.candidates] == ["ana", "dee"]

    @pytest.mark.asyncio
    async def test_only_top_n_get_etas(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        presence.find_nearby.return_value = [
            _nearby(f"u{i}", 51.50 + 0.01 * i, -0.12, 100 * (i + 1)) for i in range(8)
        ]
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(eta_top_n=1), now_ms=NOW_MS)

        # eta_top_n is clamped up to 5
        assert len(provider.matrix_calls[0][1]) == 5
        with_eta = [c for c in result.candidates if c.eta_seconds is not None]
        without_eta = [c for c in result.candidates if c.eta_seconds is None]
        assert len(with_eta) == 5
        assert [c.user_id for c in without_eta] == ["u5", "u6", "u7"]
        assert result.candidates[-1].user_id == "u7"

    @pytest.mark.asyncio
    async def test_rate_limited_is_distance_only(self, presence, profiles, eta_cache, deny_limiter, provider, viewer):
        service = _service(presence, profiles, eta_cache, deny_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.warnings == [WARNING_RATE_LIMITED]
        assert provider.matrix_calls == []
        assert all(c.eta_seconds is None for c in result.candidates)
        assert [c.user_id for c in result.candidates] == ["ana", "bob", "cai"]

    @pytest.mark.asyncio
    async def test_provider_failure_warns(self, presence, profiles, eta_cache, allow_limiter, failing_provider, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter, failing_provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.warnings == [WARNING_PROVIDER_UNAVAILABLE]
        assert all(c.eta_seconds is None for c in result.candidates)
        assert eta_cache.put_calls == []

    @pytest.mark.asyncio
    async def test_ttl_controls_cache_expiry(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)
        await service.rank(viewer, _query(eta_ttl_seconds=60), now_ms=NOW_MS)
        entry = eta_cache.put_calls[0][0]
        # Clamped up to the 120 s minimum
        assert entry.expires_at - entry.computed_at == timedelta(seconds=120)


class TestRankViewer:
    """Tests for the viewer's own presence and privacy."""

    @pytest.mark.asyncio
    async def test_records_viewer_presence(self, presence, profiles, eta_cache, allow_limiter, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter)
        await service.rank(viewer, _query(accuracy_m="25"), now_ms=NOW_MS)

        args = presence.upsert.call_args
        assert args.args[:4] == ("viewer", VIEWER[0], VIEWER[1], 25)
        assert args.kwargs["privacy_hide"] is False
        assert presence.find_nearby.call_args.kwargs["exclude_user_id"] == "viewer"

    @pytest.mark.asyncio
    async def test_approximate_viewer_is_snapped(self, presence, profiles, eta_cache, allow_limiter, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter)
        await service.rank(viewer, _query(approximate=True), now_ms=NOW_MS)
        assert presence.upsert.call_args.args[1:3] == (51.5, -0.12)

    @pytest.mark.asyncio
    async def test_hidden_viewer_gets_nothing(self, presence, profiles, eta_cache, allow_limiter, provider, viewer):
        profiles.get_profile.return_value = _profile(hidden=True)
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.candidates == []
        assert presence.upsert.call_args.kwargs["privacy_hide"] is True
        presence.find_nearby.assert_not_called()
        assert provider.matrix_calls == []

    @pytest.mark.asyncio
    async def test_presence_store_down(self, presence, profiles, eta_cache, allow_limiter, viewer):
        presence.find_nearby.return_value = None
        service = _service(presence, profiles, eta_cache, allow_limiter)

        result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.candidates == []
        assert result.warnings == [WARNING_PRESENCE_UNAVAILABLE]

    @pytest.mark.asyncio
    async def test_profile_store_down_records_nothing(
        self, presence, session_maker, eta_cache, allow_limiter, provider, viewer
    ):
        """An unreadable privacy flag never lets coordinates through."""
        repo = Mock()
        repo.get = AsyncMock(side_effect=RuntimeError("db down"))
        profiles = ProfileService(session_maker)
        service = _service(presence, profiles, eta_cache, allow_limiter, provider)

        with patch("proximity.services.profile_service.UserProfileRepository", return_value=repo):
            result = await service.rank(viewer, _query(), now_ms=NOW_MS)

        assert result.candidates == []
        assert result.warnings == [WARNING_PROFILE_UNAVAILABLE]
        presence.upsert.assert_not_called()
        presence.find_nearby.assert_not_called()
        assert provider.matrix_calls == []

    @pytest.mark.asyncio
    async def test_invalid_viewer_coordinate(self, presence, profiles, eta_cache, allow_limiter, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter)
        with pytest.raises(InvalidCoordinateError):
            await service.rank(viewer, NearbyQuery(lat="abc", lng=0))
        presence.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_radius_and_limit_are_clamped(self, presence, profiles, eta_cache, allow_limiter, viewer):
        service = _service(presence, profiles, eta_cache, allow_limiter)
        await service.rank(viewer, _query(radius_m=10, limit=1000), now_ms=NOW_MS)
        args = presence.find_nearby.call_args.args
        assert args[2:4] == (500, 100)


class TestRankingResponse:
    """Tests for the response body."""

    def test_warnings_omitted_when_empty(self):
        from proximity.models.proximity_models import RankingResult

        body = RankingResult(candidates=[Candidate(user_id="a", distance_meters=10)]).to_response()
        assert "warnings" not in body
        assert body["candidates"][0]["user_id"] == "a"
