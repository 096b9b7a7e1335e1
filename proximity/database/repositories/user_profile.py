"""
Repository for user profiles.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from proximity.database.models.user_profile import UserProfile
from proximity.database.repositories.base import BaseRepository


class UserProfileRepository(BaseRepository[UserProfile]):
    """Read access to profiles keyed by ``user_id``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UserProfile, "user_id")
