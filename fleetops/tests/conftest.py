"""
Centralized Test Configuration.
"""

import asyncio
import itertools
from datetime import date, datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from fleetops.app.core.config import Settings
from fleetops.app.core.dependencies import get_coordinator
from fleetops.app.db.memory_store import MemoryFleetStore
from fleetops.app.db.session import build_session_factory, create_tables, Base
from fleetops.app.db.sql_store import SqlFleetStore
from fleetops.app.domain.fleet.clock import FixedClock
from fleetops.app.main import app
from fleetops.app.schemas.driver import DriverCreate
from fleetops.app.schemas.vehicle import VehicleCreate
from fleetops.app.services.cache import MetricsCache
from fleetops.app.services.change_feed import LocalChangeFeed
from fleetops.app.services.fleet_coordinator import FleetCoordinator

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


# Mock Redis for reliability in CI/CD
class MockPubSub:
    def __init__(self, redis):
        self._redis = redis
        self._queue = asyncio.Queue()
        self.channels = set()
        self.closed = False

    async def subscribe(self, *channels):
        for channel in channels:
            self.channels.add(channel)
            self._redis.subscribers.setdefault(channel, []).append(self._queue)
            await self._queue.put({"type": "subscribe", "channel": channel, "data": 1})

    async def unsubscribe(self, *channels):
        for channel in channels or tuple(self.channels):
            self.channels.discard(channel)
            queues = self._redis.subscribers.get(channel, [])
            if self._queue in queues:
                queues.remove(self._queue)

    async def listen(self):
        while True:
            message = await self._queue.get()
            if isinstance(message, Exception):
                raise message
            yield message

    def drop(self, error: Exception):
        """Simulate the connection dying under a blocked listener."""
        self._queue.put_nowait(error)

    async def aclose(self):
        self.closed = True


class MockRedis:
    def __init__(self):
        self.store = {}
        self.subscribers = {}
        self.pubsubs = []
        self.broken = False

    def _check(self):
        if self.broken:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True

    async def incr(self, key):
        self._check()
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def publish(self, channel, data):
        self._check()
        queues = self.subscribers.get(channel, [])
        for queue in queues:
            queue.put_nowait({"type": "message", "channel": channel, "data": data})
        return len(queues)

    def pubsub(self):
        pubsub = MockPubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def test_settings():
    return Settings(compliance_window_days=30, prevent_driver_double_booking=True)


@pytest.fixture
def change_feed():
    return LocalChangeFeed()


@pytest.fixture
def memory_store(change_feed):
    return MemoryFleetStore(change_feed=change_feed)


@pytest.fixture
def coordinator(memory_store, clock, test_settings):
    return FleetCoordinator(memory_store, clock=clock, settings=test_settings)


@pytest.fixture
def metrics_cache(mock_redis):
    return MetricsCache(mock_redis, ttl_seconds=60, prefix="test:metrics")


@pytest.fixture
def cached_coordinator(memory_store, clock, test_settings, metrics_cache):
    return FleetCoordinator(memory_store, clock=clock, metrics_cache=metrics_cache, settings=test_settings)


def _fleet_factories(target):
    plates = itertools.count(1)

    async def make_vehicle(**overrides):
        n = next(plates)
        data = {
            "name": f"Truck {n}",
            "plate": f"TRK-{n:03d}",
            "type": "Truck",
            "max_load": 20000,
            "odometer": 1000,
            "acquisition_cost": 100000,
        }
        data.update(overrides)
        return await target.register_vehicle(VehicleCreate(**data))

    async def make_driver(**overrides):
        data = {
            "name": "Alex Driver",
            "license_expiry": TODAY + timedelta(days=10),
            "status": "On Duty",
        }
        data.update(overrides)
        return await target.register_driver(DriverCreate(**data))

    return make_vehicle, make_driver


@pytest.fixture
def make_vehicle(coordinator):
    return _fleet_factories(coordinator)[0]


@pytest.fixture
def make_driver(coordinator):
    return _fleet_factories(coordinator)[1]


# SQL store over in-memory SQLite
@pytest.fixture
async def sql_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await create_tables(bind=engine)
    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sql_store(sql_engine, change_feed):
    return SqlFleetStore(build_session_factory(sql_engine), change_feed=change_feed, timeout_seconds=5)


@pytest.fixture
def sql_coordinator(sql_store, clock, test_settings):
    return FleetCoordinator(sql_store, clock=clock, settings=test_settings)


@pytest.fixture
def sql_factories(sql_coordinator):
    return _fleet_factories(sql_coordinator)


@pytest.fixture
async def client(coordinator):
    """Async client for testing."""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}
