"""
Database repositories for the proximity engine.
"""
from proximity.database.repositories.base import BaseRepository
from proximity.database.repositories.presence import PresenceRepository
from proximity.database.repositories.rate_limit import RateLimitRepository
from proximity.database.repositories.routing_cache import RoutingCacheRepository
from proximity.database.repositories.user_profile import UserProfileRepository

__all__ = [
    "BaseRepository",
    "PresenceRepository",
    "RateLimitRepository",
    "RoutingCacheRepository",
    "UserProfileRepository",
]
