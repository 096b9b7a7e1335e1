"""
Read-only access to user profiles for ranking.
"""

import asyncio
import logging
from typing import Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from proximity.database.connection import session_scope
from proximity.database.models.user_profile import UserProfile
from proximity.database.repositories.user_profile import UserProfileRepository
from proximity.exceptions import StoreUnavailableError
from proximity.models.proximity_models import PublicProfile
from proximity.utils.async_utils import run_with_timeout

logger = logging.getLogger(__name__)


class ProfileService:
    """Loads viewer settings and candidate public profiles."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]],
        timeout: float = 8.0,
    ):
        self._session_maker = session_maker
        self.timeout = timeout

    async def _get(self, user_id: str) -> Optional[UserProfile]:
        async with session_scope(self._session_maker) as session:
            return await UserProfileRepository(session).get(user_id)

    async def _get_many(self, user_ids) -> Dict[str, UserProfile]:
        async with session_scope(self._session_maker) as session:
            return await UserProfileRepository(session).get_many(user_ids)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Load one profile.

        Returns:
            UserProfile, or None when the user has no profile (or no store
            is configured)

        Raises:
            StoreUnavailableError: If the store failed or timed out; the
                caller cannot know whether the user opted out of proximity
        """
        if self._session_maker is None:
            return None
        try:
            return await run_with_timeout(self._get(user_id), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Profile lookup timed out for {user_id}")
            raise StoreUnavailableError("Profile store unavailable")
        except Exception as e:
            logger.error(f"Profile lookup failed for {user_id}: {e}", exc_info=True)
            raise StoreUnavailableError("Profile store unavailable")

    async def get_public_profiles(self, user_ids: Iterable[str]) -> Dict[str, PublicProfile]:
        """
        Load the public subset of several profiles.

        Returns:
            Mapping of user id to PublicProfile; missing users are absent and
            a store failure yields an empty mapping
        """
        ids = list(dict.fromkeys(str(uid) for uid in user_ids if uid))
        if not ids or self._session_maker is None:
            return {}
        try:
            rows = await run_with_timeout(self._get_many(ids), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Profile batch lookup timed out for {len(ids)} users")
            return {}
        except Exception as e:
            logger.error(f"Profile batch lookup failed: {e}", exc_info=True)
            return {}

        return {str(uid): PublicProfile.model_validate(row) for uid, row in rows.items()}
