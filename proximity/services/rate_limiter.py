"""
Best-effort rate limiter for routing calls.

Counters live in the ``routing_rate_limits`` table. Checking a bucket also
counts the request, in one atomic upsert. The limiter never raises: when the
store is unavailable it fails open (or closed, if configured) and reports
``skipped=True`` so callers can tell the limit was not enforced.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from proximity.database.connection import session_scope
from proximity.database.repositories.rate_limit import RateLimitRepository
from proximity.utils.async_utils import run_with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: Optional[int] = None
    skipped: bool = False


def minute_bucket(now_ms: Optional[int] = None) -> int:
    """Index of the current one-minute window."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return int(now_ms // 60000)


def build_bucket_key(scope: str, *parts: Optional[str], now_ms: Optional[int] = None) -> str:
    """
    Compose a bucket key such as ``etas:<user>:<ip>:<minute>``.

    Missing parts are written as ``noip`` for the trailing IP slot and
    ``anon`` otherwise, so keys stay well-formed for anonymous callers.
    """
    rendered = []
    for index, part in enumerate(parts):
        if part:
            rendered.append(str(part))
        else:
            rendered.append("noip" if index == len(parts) - 1 else "anon")
    return ":".join([scope, *rendered, str(minute_bucket(now_ms))])


class RateLimiter:
    """
    Atomic check-and-increment over the rate-limit store.

    Example:
        decision = await limiter.check(
            bucket_key=build_bucket_key("etas", user_id, ip),
            actor_id=user_id,
            ip=ip,
            window_seconds=60,
            max_requests=20,
        )
        if not decision.allowed:
            ...
    """

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]],
        fail_open: bool = True,
        timeout: float = 8.0,
    ):
        """
        Initialize the limiter.

        Args:
            session_maker: Session factory for the store; None disables
                enforcement (every check is skipped)
            fail_open: Allow requests when the store cannot be reached
            timeout: Upper bound in seconds for one store round-trip
        """
        self._session_maker = session_maker
        self.fail_open = fail_open
        self.timeout = timeout

    def _unenforced(self, reason: str) -> RateLimitDecision:
        logger.warning(f"Rate limit not enforced ({reason}); fail_open={self.fail_open}")
        return RateLimitDecision(allowed=self.fail_open, remaining=None, skipped=True)

    async def _increment(self, bucket_key, actor_id, ip, window_seconds, max_requests) -> int:
        async with session_scope(self._session_maker) as session:
            repo = RateLimitRepository(session)
            return await repo.increment(
                bucket_key=bucket_key,
                user_id=actor_id,
                ip=ip,
                window_seconds=window_seconds,
                max_requests=max_requests,
            )

    async def check(
        self,
        bucket_key: str,
        actor_id: Optional[str],
        ip: Optional[str],
        window_seconds: int,
        max_requests: int,
    ) -> RateLimitDecision:
        """
        Count one request against ``bucket_key`` and decide whether it may proceed.

        Args:
            bucket_key: Application-chosen key that embeds the window
            actor_id: User id recorded with the bucket (may be None)
            ip: Client IP recorded with the bucket (may be None)
            window_seconds: Window length recorded with the bucket
            max_requests: Requests allowed per window

        Returns:
            RateLimitDecision; never raises
        """
        if (
            not isinstance(bucket_key, str)
            or not bucket_key
            or not isinstance(window_seconds, int)
            or not isinstance(max_requests, int)
            or window_seconds <= 0
            or max_requests <= 0
        ):
            return self._unenforced("malformed input")

        if self._session_maker is None:
            return self._unenforced("store not configured")

        try:
            count = await run_with_timeout(
                self._increment(bucket_key, actor_id, ip, window_seconds, max_requests),
                self.timeout,
            )
        except asyncio.TimeoutError:
            return self._unenforced("store timeout")
        except Exception as e:
            logger.error(f"Rate limit store error for {bucket_key}: {e}", exc_info=True)
            return self._unenforced("store error")

        if not isinstance(count, int):
            return self._unenforced("malformed store response")

        allowed = count <= max_requests
        remaining = max(0, max_requests - count)
        if not allowed:
            logger.info(f"Rate limit exceeded for {bucket_key} ({count}/{max_requests})")
        return RateLimitDecision(allowed=allowed, remaining=remaining, skipped=False)
