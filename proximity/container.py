"""
Process-wide collaborators.

Everything that holds a connection pool (HTTP client, database engine) is
built once here, at application start, and handed to the services. Request
handlers reach the container through FastAPI dependencies, never through
module globals.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from proximity.database.connection import close_db, create_engine, create_session_maker
from proximity.providers.manager import RoutingProviderManager, create_routing_manager
from proximity.providers.settings import ProximitySettings
from proximity.services.eta_cache import EtaCacheStore
from proximity.services.presence_service import PresenceService
from proximity.services.profile_service import ProfileService
from proximity.services.rate_limiter import RateLimiter
from proximity.services.ranking_service import CandidateRankingService
from proximity.services.travel_time_service import TravelTimeService
from proximity.utils.async_utils import SingleFlight

logger = logging.getLogger(__name__)


@dataclass
class EngineContainer:
    """Long-lived clients and the services built on them."""

    settings: ProximitySettings
    manager: RoutingProviderManager
    rate_limiter: RateLimiter
    eta_cache: EtaCacheStore
    presence: PresenceService
    profiles: ProfileService
    travel_time: TravelTimeService
    ranking: CandidateRankingService
    http_client: Optional[httpx.AsyncClient] = None
    engine: Optional[AsyncEngine] = None

    async def close(self) -> None:
        await self.manager.close()
        if self.http_client is not None and not self.http_client.is_closed:
            await self.http_client.aclose()
        if self.engine is not None:
            await close_db(self.engine)
        logger.info("Engine container closed")


def build_services(
    settings: ProximitySettings,
    manager: RoutingProviderManager,
    session_maker: Optional[async_sessionmaker[AsyncSession]],
    http_client: Optional[httpx.AsyncClient] = None,
    engine: Optional[AsyncEngine] = None,
) -> EngineContainer:
    """
    Wire the services around already-built clients.

    Args:
        settings: Process settings
        manager: Routing tiers
        session_maker: Session factory for the stores; None runs without
            persistence (no cache, unenforced limits, no presence)
        http_client: Shared HTTP client, closed with the container
        engine: Database engine, disposed with the container
    """
    timeout = settings.store_timeout_seconds
    limiter = RateLimiter(session_maker, fail_open=settings.rate_limit_fail_open, timeout=timeout)
    cache = EtaCacheStore(session_maker, timeout=timeout)
    presence = PresenceService(session_maker, timeout=timeout, max_age_seconds=settings.presence_max_age_seconds)
    profiles = ProfileService(session_maker, timeout=timeout)

    travel_time = TravelTimeService(
        manager=manager,
        cache=cache,
        limiter=limiter,
        single_flight=SingleFlight(),
        etas_per_minute=settings.rate_limit_etas_per_minute,
        travel_time_per_minute=settings.rate_limit_travel_time_per_minute,
    )
    ranking = CandidateRankingService(
        presence=presence,
        profiles=profiles,
        cache=cache,
        limiter=limiter,
        manager=manager,
        nearby_per_minute=settings.rate_limit_nearby_per_minute,
        max_presence_age_seconds=settings.presence_max_age_seconds,
    )

    return EngineContainer(
        settings=settings,
        manager=manager,
        rate_limiter=limiter,
        eta_cache=cache,
        presence=presence,
        profiles=profiles,
        travel_time=travel_time,
        ranking=ranking,
        http_client=http_client,
        engine=engine,
    )


def build_container(settings: ProximitySettings) -> EngineContainer:
    """Build every client from settings (called once from the app lifespan)."""
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.routing_timeout_seconds),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )
    manager = create_routing_manager(settings, http_client=http_client)
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)

    logger.info(
        f"Engine container ready (routing configured: {manager.is_configured}, "
        f"rate limit fail-open: {settings.rate_limit_fail_open})"
    )
    return build_services(settings, manager, session_maker, http_client=http_client, engine=engine)


def get_container(request: Request) -> EngineContainer:
    """FastAPI dependency returning the container built at startup."""
    return request.app.state.container


def get_travel_time_service(request: Request) -> TravelTimeService:
    return get_container(request).travel_time


def get_ranking_service(request: Request) -> CandidateRankingService:
    return get_container(request).ranking


def get_app_settings(request: Request) -> ProximitySettings:
    return get_container(request).settings
