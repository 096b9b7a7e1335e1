"""Services module."""
from proximity.services.eta_cache import EtaCacheStore
from proximity.services.presence_service import PresenceService
from proximity.services.profile_service import ProfileService
from proximity.services.ranking_service import CandidateRankingService
from proximity.services.rate_limiter import RateLimiter
from proximity.services.travel_time_service import TravelTimeService

__all__ = [
    "CandidateRankingService",
    "EtaCacheStore",
    "PresenceService",
    "ProfileService",
    "RateLimiter",
    "TravelTimeService",
]
