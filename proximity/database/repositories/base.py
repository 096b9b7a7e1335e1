"""
Base repository with common read operations.
"""
from typing import Any, Dict, Generic, Iterable, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from proximity.database.connection import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository for models keyed by a single primary-key column."""

    def __init__(self, session: AsyncSession, model: Type[ModelType], key_column: str):
        """
        Initialize repository with session and model class.

        Args:
            session: SQLAlchemy async session
            model: SQLAlchemy model class
            key_column: Name of the model's primary-key attribute
        """
        self.session = session
        self.model = model
        self.key_column = key_column

    @property
    def _key(self):
        return getattr(self.model, self.key_column)

    async def get(self, key: Any) -> Optional[ModelType]:
        """
        Get a single record by primary key.

        Args:
            key: Primary-key value

        Returns:
            Model instance or None if not found
        """
        result = await self.session.execute(
            select(self.model).where(self._key == key)
        )
        return result.scalar_one_or_none()

    async def get_many(self, keys: Iterable[Any]) -> Dict[Any, ModelType]:
        """
        Get several records by primary key.

        Args:
            keys: Primary-key values; duplicates are ignored

        Returns:
            Mapping of key to model instance for the rows that exist
        """
        unique = list(dict.fromkeys(keys))
        if not unique:
            return {}
        result = await self.session.execute(
            select(self.model).where(self._key.in_(unique))
        )
        return {getattr(row, self.key_column): row for row in result.scalars().all()}
