# tests/conftest.py

"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tradearena.config import Settings
from tradearena.db.models import Base
from tradearena.db.session import create_session_factory, get_db
from tradearena.main import app
from tradearena.services.notifier import get_notifier

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A fixed "now" so range expansion and grace windows are deterministic
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Collects notifications instead of pushing them over WebSockets."""

    def __init__(self) -> None:
        self.match_found: list[tuple[str, dict]] = []
        self.rating_changes: list[tuple[str, dict]] = []

    async def on_match_found(self, user_id: str, payload: dict) -> None:
        self.match_found.append((user_id, payload))

    async def on_rating_change(self, user_id: str, payload: dict) -> None:
        self.rating_changes.append((user_id, payload))


class FailingNotifier:
    """A notifier whose transport is down."""

    async def on_match_found(self, user_id: str, payload: dict) -> None:
        raise ConnectionError("socket closed")

    async def on_rating_change(self, user_id: str, payload: dict) -> None:
        raise ConnectionError("socket closed")


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment running the tests."""
    return Settings()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    A fresh in-memory database per test.

    StaticPool keeps every session on the same connection, so the API, the
    matchmaker and the test itself all see the same data.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and inspecting data directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: RecordingNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Each request gets its own session, like in production
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the overrides after the test
    app.dependency_overrides.clear()
