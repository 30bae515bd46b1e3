"""Shared test configuration and fixtures."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from remoteconfig.cache.invalidation import CacheInvalidationPublisher
from remoteconfig.cache.template_cache import RedisTemplateCacheService
from remoteconfig.contracts.template import TemplateType
from remoteconfig.stores.memory import InMemoryTemplateStore
from remoteconfig.utils.settings import CacheSettings
from tests._fixtures.factories import SchemaFactory
from tests._fixtures.fake_redis import FakeClock, FakeRedis


@pytest.fixture
def clock():
    """Controllable clock shared by the fake Redis and time-dependent services."""
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def utc_clock(clock):
    """``datetime`` view of the fake clock for month and day keys."""
    return lambda: datetime.fromtimestamp(clock(), tz=timezone.utc)


@pytest.fixture
def template_cache(fake_redis):
    return RedisTemplateCacheService(fake_redis, CacheSettings(ttl_seconds=300))


@pytest.fixture
def publisher(fake_redis):
    return CacheInvalidationPublisher(fake_redis)


@pytest_asyncio.fixture
async def template_store():
    """Store seeded with a SYSTEM and a USER schema for ``app-1``."""
    store = InMemoryTemplateStore()
    await store.save_schema("app-1", TemplateType.SYSTEM, SchemaFactory.feature_flags())
    await store.save_schema("app-1", TemplateType.USER, SchemaFactory.user_preferences())
    return store
