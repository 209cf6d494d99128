"""
Pytest fixtures for LeaseGate tests.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure test config is set before importing leasegate modules.
os.environ.setdefault("LEASEGATE_ENV", "development")
os.environ.setdefault("LEASEGATE_STALE_TIMEOUT_SECONDS", "30")
os.environ.setdefault("LEASEGATE_SWEEP_INTERVAL_SECONDS", "60")

from leasegate.db import base as db_base
from leasegate.db.base import Base, create_engine
from leasegate.db.repositories import IdentifierRepository
from leasegate.observability.metrics import metrics
import leasegate.db.tables  # noqa: F401
import leasegate.tasks.sweep as sweep_module


class FakeClock:
    """Deterministic clock; call it to read, advance it to move time."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float, origin: datetime | None = None) -> datetime:
        """Set the clock to origin + seconds."""
        self.now = (origin or datetime(2026, 1, 1, tzinfo=timezone.utc)) + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(autouse=True)
def reset_process_state():
    """Fresh metrics and sweep lock for every test."""
    metrics.reset()
    sweep_module._sweep_lock = asyncio.Lock()
    yield


@pytest.fixture
async def engine(tmp_path, monkeypatch):
    """Create a per-test SQLite database and wire it into leasegate.db.base."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'leasegate-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Override global engine/session factory for dependency injection.
    monkeypatch.setattr(db_base, "engine", engine)
    monkeypatch.setattr(
        db_base,
        "async_session_factory",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """Provide a session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seed(session_factory):
    """Seed identifiers and commit them."""

    async def _seed(*values: str) -> int:
        async with session_factory() as s:
            added = await IdentifierRepository(s).seed(values)
            await s.commit()
        return added

    return _seed


@pytest.fixture
async def client(engine):
    """Async test client against the app, without running its lifespan."""
    from leasegate.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
