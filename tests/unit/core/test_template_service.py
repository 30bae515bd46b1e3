"""Test the cached template read path."""

from unittest.mock import AsyncMock

import pytest

from remoteconfig.cache.template_cache import build_cache_key
from remoteconfig.contracts.cache import CacheInvalidationEvent, CacheInvalidationType
from remoteconfig.contracts.template import TemplateType
from remoteconfig.core.resolution import TemplateResolutionService
from remoteconfig.core.template_service import TemplateService
from remoteconfig.utils.exceptions import ValidationError
from remoteconfig.utils.hashing import user_id_to_uuid


@pytest.fixture
def service(template_store, template_cache, publisher):
    resolution = TemplateResolutionService(template_store, template_store)
    return TemplateService(resolution, template_store, template_cache, publisher)


class TestTemplateService:
    """Test caching and user writes."""

    @pytest.mark.asyncio
    async def test_system_values_cached_under_blank_identifier(self, service, fake_redis):
        await service.get_merged_system_values("app-1", "env-1")
        assert await fake_redis.get(build_cache_key("app-1", "env-1", TemplateType.SYSTEM, "")) is not None

    @pytest.mark.asyncio
    async def test_cache_hit_skips_stores(self, service, template_store):
        first = await service.get_merged_system_values("app-1", "env-1", "beta")
        await template_store.save_override(
            "app-1", "env-1", TemplateType.SYSTEM, "beta", {"tier": "pro"}
        )

        # Served from cache until invalidated.
        second = await service.get_merged_system_values("app-1", "env-1", "beta")
        assert second == first
        assert second.values["tier"] == "free"

    @pytest.mark.asyncio
    async def test_user_values_cached_by_user_id(self, service, fake_redis):
        merged = await service.get_merged_user_values("app-1", "env-1", "user-1")
        key = build_cache_key("app-1", "env-1", TemplateType.USER, "user-1")
        assert await fake_redis.get(key) is not None
        assert merged.applied_identifier == "user-1"

    @pytest.mark.asyncio
    async def test_set_user_values_invalidates_and_publishes(
        self, service, template_store, fake_redis
    ):
        await service.get_merged_user_values("app-1", "env-1", "user-1")
        await service.get_merged_user_values("app-1", "env-1", "user-2")

        await service.set_user_values("app-1", "env-1", "user-1", {"theme": "dark"})

        assert await fake_redis.get(build_cache_key("app-1", "env-1", TemplateType.USER, "user-1")) is None
        assert await fake_redis.get(build_cache_key("app-1", "env-1", TemplateType.USER, "user-2")) is not None
        assert await template_store.find_user_override(
            "app-1", "env-1", user_id_to_uuid("user-1")
        ) == {"theme": "dark"}

        channel, message = fake_redis.published[-1]
        event = CacheInvalidationEvent.from_message(message)
        assert channel == "template:invalidate"
        assert event.type is CacheInvalidationType.USER_CHANGE
        assert event.identifier == "user-1"

        merged = await service.get_merged_user_values("app-1", "env-1", "user-1")
        assert merged.values["theme"] == "dark"

    @pytest.mark.asyncio
    async def test_set_user_values_replaces_previous_values(self, service, template_store):
        await service.set_user_values("app-1", "env-1", "user-1", {"theme": "dark"})
        await service.set_user_values("app-1", "env-1", "user-1", {"font_size": 20})

        stored = await template_store.find_user_override("app-1", "env-1", user_id_to_uuid("user-1"))
        assert stored == {"font_size": 20}

    @pytest.mark.asyncio
    async def test_set_user_values_validates(self, service, publisher):
        publisher.publish = AsyncMock()
        with pytest.raises(ValidationError):
            await service.set_user_values("app-1", "env-1", "user-1", {"font_size": 100})
        publisher.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_multi_identifier_values_not_cached(self, service, template_store, fake_redis):
        await template_store.save_override("app-1", "env-1", TemplateType.SYSTEM, "a", {"tier": "pro"})
        merged = await service.get_merged_values("app-1", "env-1", TemplateType.SYSTEM, ["a"])
        assert merged.values["tier"] == "pro"
        assert fake_redis.data == {}
