"""
Database module for the proximity engine.

Provides SQLAlchemy async connection helpers, models, and repositories.
"""
from proximity.database.connection import (
    Base,
    close_db,
    create_engine,
    create_session_maker,
    get_database_url,
    init_db,
    session_scope,
)
from proximity.database.repositories import (
    BaseRepository,
    PresenceRepository,
    RateLimitRepository,
    RoutingCacheRepository,
    UserProfileRepository,
)

__all__ = [
    # Connection
    "Base",
    "get_database_url",
    "create_engine",
    "create_session_maker",
    "session_scope",
    "init_db",
    "close_db",
    # Repositories
    "BaseRepository",
    "PresenceRepository",
    "RateLimitRepository",
    "RoutingCacheRepository",
    "UserProfileRepository",
]
