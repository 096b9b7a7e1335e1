"""
Tests for the best-effort rate limiter.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock, patch

from proximity.services.rate_limiter import RateLimiter, build_bucket_key, minute_bucket


def _repo(count=None, side_effect=None):
    repo = Mock()
    repo.increment = AsyncMock(return_value=count, side_effect=side_effect)
    return repo


class TestBucketKey:
    """Tests for bucket key composition."""

    def test_minute_bucket(self):
        assert minute_bucket(59_999) == 0
        assert minute_bucket(60_000) == 1

    def test_full_key(self):
        assert build_bucket_key("etas", "user-1", "1.2.3.4", now_ms=120_000) == "etas:user-1:1.2.3.4:2"

    def test_missing_parts(self):
        """It should use placeholders so anonymous keys stay well-formed."""
        assert build_bucket_key("etas", None, None, now_ms=0) == "etas:anon:noip:0"
        assert build_bucket_key("travel_time", None, now_ms=0) == "travel_time:noip:0"


class TestRateLimiterCheck:
    """Tests for RateLimiter.check."""

    @pytest.mark.asyncio
    async def test_allows_under_limit(self, session_maker, session):
        limiter = RateLimiter(session_maker)
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=_repo(3)):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)

        assert decision.allowed is True
        assert decision.remaining == 17
        assert decision.skipped is False
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_allows_at_exact_limit(self, session_maker):
        limiter = RateLimiter(session_maker)
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=_repo(20)):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.allowed is True
        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_denies_over_limit(self, session_maker):
        limiter = RateLimiter(session_maker)
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=_repo(21)):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.allowed is False
        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_store_error_fails_open(self, session_maker, session):
        limiter = RateLimiter(session_maker, fail_open=True)
        repo = _repo(side_effect=RuntimeError("connection refused"))
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=repo):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)

        assert decision.allowed is True
        assert decision.skipped is True
        assert decision.remaining is None
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_error_fails_closed(self, session_maker):
        limiter = RateLimiter(session_maker, fail_open=False)
        repo = _repo(side_effect=RuntimeError("connection refused"))
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=repo):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.allowed is False
        assert decision.skipped is True

    @pytest.mark.asyncio
    async def test_store_timeout_is_skipped(self, session_maker):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return 1

        repo = Mock()
        repo.increment = slow
        limiter = RateLimiter(session_maker, timeout=0.01)
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=repo):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.skipped is True
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_malformed_store_response(self, session_maker):
        limiter = RateLimiter(session_maker)
        with patch("proximity.services.rate_limiter.RateLimitRepository", return_value=_repo("7")):
            decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.skipped is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bucket_key,window,max_requests", [
        ("", 60, 20),
        (None, 60, 20),
        ("etas:u:ip:1", 0, 20),
        ("etas:u:ip:1", 60, -1),
        ("etas:u:ip:1", "60", 20),
    ])
    async def test_malformed_input_is_skipped(self, session_maker, bucket_key, window, max_requests):
        limiter = RateLimiter(session_maker)
        decision = await limiter.check(bucket_key, "u", "ip", window, max_requests)
        assert decision.skipped is True
        session_maker.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_store_configured(self):
        limiter = RateLimiter(None, fail_open=False)
        decision = await limiter.check("etas:u:ip:1", "u", "ip", 60, 20)
        assert decision.allowed is False
        assert decision.skipped is True
