"""Shared test fixtures for the radiofit test suite."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from radiofit.core.container import build_services
from radiofit.core.database import Base
from radiofit.core.exceptions import TimezoneDetectionError
# Import all models so their metadata is registered on Base
import radiofit.models.database  # noqa: F401
from radiofit.services.errors import TimezoneErrorReporter
from radiofit.services.timezone import TimezoneResolver

# 2025-01-15 09:30 in Tokyo
FIXED_NOW = datetime(2025, 1, 15, 0, 30, tzinfo=timezone.utc)


class FakeDetector:
    """Stand-in for system timezone detection that tests can change or break."""

    def __init__(self, tz_name: str = "Asia/Tokyo"):
        self.timezone = tz_name
        self.fail = False

    def __call__(self) -> str:
        if self.fail:
            raise TimezoneDetectionError("detection disabled for test")
        return self.timezone


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reporter():
    return TimezoneErrorReporter()


@pytest.fixture
def resolver(reporter, detector, clock):
    return TimezoneResolver(reporter, detector=detector, clock=clock)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """
    Provide a session factory bound to a fresh SQLite file.

    Creates all tables before the test and disposes of the engine after.
    Each test gets a clean database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    await engine.dispose()


@pytest_asyncio.fixture
async def services(session_maker, detector, clock):
    services = build_services(session_maker, detector=detector, clock=clock)
    yield services
    services.detector.stop_monitoring()
    services.reminders.shutdown()
