# src/tradearena/db/session.py

"""Database engine and session management."""
import logging
import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tradearena.config import get_settings

logger = logging.getLogger(__name__)


def create_engine_for(url: str) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend.

    SQLite doesn't support connection pooling, so pool settings are only
    applied to server databases like PostgreSQL.
    """
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)

    return create_async_engine(
        url,
        pool_size=int(os.getenv("DB_POOL_SIZE", "20")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        pool_pre_ping=True,
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "3600")),
        echo=echo,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions commit manually and keep objects usable after commit.

    The matchmaker and the request handlers share this configuration.
    """
    return async_sessionmaker(
        bind=bind, autocommit=False, autoflush=False, expire_on_commit=False
    )


engine = create_engine_for(get_settings().database_url)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Automatically handles rollback on exceptions and ensures
    the session is properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Database session error, rolling back: %s", e)
            await session.rollback()
            raise
