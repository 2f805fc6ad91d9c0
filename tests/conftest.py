"""
Shared fixtures for the Status Watch test suite.

Every test gets its own SQLite file database; no Redis, no network.
"""
import os
from datetime import datetime

import pytest
import pytest_asyncio

# Set test environment variables BEFORE any imports of the app
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from core.cache import CacheService  # noqa: E402
from core.config import Settings  # noqa: E402
from core.database import Database  # noqa: E402
from services.attack_spikes import AttackSpikeDetector  # noqa: E402
from services.event_emitter import EventEmitter  # noqa: E402
from services.incident_differ import IncidentDiffer  # noqa: E402

T0 = datetime(2026, 3, 2, 12, 0, 0)


class FakeClock:
    """Controllable Unix-time clock for cache TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/statuswatch-test.db",
        redis_enabled=False,
        scheduler_enabled=False,
        degraded_threshold_minutes=5,
        collector_timeout=0.5,
        radar_attack_threshold=1000,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def cache(settings, database, clock):
    service = CacheService(settings, database=database, clock=clock)
    await service.startup()
    yield service
    await service.shutdown()


@pytest.fixture
def emitter(database, settings):
    return EventEmitter(database, settings)


@pytest.fixture
def differ(database):
    return IncidentDiffer(database)


@pytest.fixture
def spikes(database, settings):
    return AttackSpikeDetector(database, settings)
