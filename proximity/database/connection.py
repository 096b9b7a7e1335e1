"""
Database connection configuration using SQLAlchemy 2.0 async.

Engines and session makers are built explicitly (once, in the application
lifespan) and passed to the stores; nothing here is created at import time.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from proximity.providers.settings import ProximitySettings, get_settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def get_database_url(settings: Optional[ProximitySettings] = None) -> str:
    """Build the async database URL from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql+asyncpg://{settings.postgres_user}:{settings.postgres_password}"
        f"@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_database}"
    )


def create_engine(settings: Optional[ProximitySettings] = None) -> AsyncEngine:
    """
    Create the process-wide async engine.

    Args:
        settings: Settings to read connection parameters from

    Returns:
        AsyncEngine with a bounded connection pool
    """
    settings = settings or get_settings()
    return create_async_engine(
        get_database_url(settings),
        pool_size=settings.postgres_pool_max_size,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using them
        pool_timeout=settings.store_timeout_seconds,
        echo=False,  # Set to True for SQL debugging
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session maker bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for one unit of work.

    Commits on success and rolls back on any exception.

    Usage:
        async with session_scope(session_maker) as session:
            result = await session.execute(select(Model))
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables.

    Intended for local development and tests; deployed databases are
    managed with Alembic migrations.
    """
    # Import models so they register on Base.metadata
    from proximity.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
