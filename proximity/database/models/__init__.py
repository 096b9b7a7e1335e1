"""
SQLAlchemy models for the proximity engine.
"""
from proximity.database.models.presence import PrivatePresence, PublicPresence
from proximity.database.models.rate_limit import RoutingRateLimit
from proximity.database.models.routing_cache import RoutingCacheEntry
from proximity.database.models.user_profile import UserProfile

__all__ = [
    "PrivatePresence",
    "PublicPresence",
    "RoutingCacheEntry",
    "RoutingRateLimit",
    "UserProfile",
]
