"""Shared test fixtures and configuration."""

import os
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

# Set up test environment variables before importing modules
os.environ.setdefault("STRIPE_API_KEY", "sk_test_dummy_key_for_testing")
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SYNC_RATE_LIMIT", "1000/minute")

from payments_sync.connectors import (
    SimulatorConfig,
    SimulatorCursorAdapter,
    SimulatorTimelineAdapter,
    SimulatedTransactionMapper,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mapper():
    return SimulatedTransactionMapper()


@pytest.fixture
def cursor_source():
    """Forward-cursor simulator holding 50 transactions one minute apart."""
    adapter = SimulatorCursorAdapter(SimulatorConfig(seed=42))
    adapter.generate(50, start=START)
    return adapter


@pytest.fixture
def empty_cursor_source():
    return SimulatorCursorAdapter(SimulatorConfig(seed=42))


@pytest.fixture
def timeline_source():
    """Reverse-chronological simulator holding 10 transactions."""
    adapter = SimulatorTimelineAdapter(SimulatorConfig(seed=42))
    adapter.generate(10, start=START)
    return adapter


@pytest.fixture
def api_env():
    """Environment needed by the HTTP surface."""
    with patch.dict(os.environ, {
        "API_KEY": "test_api_key_12345",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "SYNC_RATE_LIMIT": "1000/minute",
    }):
        yield


@pytest.fixture
def auth_headers():
    """Return headers with authentication."""
    return {
        "Authorization": "Bearer test_api_key_12345",
        "X-Provider": "simulator",
    }


# Database fixtures
@pytest.fixture
async def test_db_engine():
    """Create an in-memory SQLite database for testing."""
    from payments_sync.database import Base, create_async_engine

    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db_session(test_db_engine):
    """Create a database session for testing."""
    from payments_sync.database import get_async_session_factory

    session_factory = get_async_session_factory(test_db_engine)
    async with session_factory() as session:
        yield session
