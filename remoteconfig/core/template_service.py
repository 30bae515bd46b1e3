"""
Template read path used by client-facing endpoints.

Resolved responses are served from the template cache when present and
written back after a miss. User writes clear the local entry immediately
and tell every other process through the invalidation bus.
"""

from typing import Any, Dict, Optional, Sequence

from remoteconfig.cache.invalidation import CacheInvalidationPublisher
from remoteconfig.cache.template_cache import TemplateCacheService
from remoteconfig.contracts.cache import CacheInvalidationEvent, CacheInvalidationType
from remoteconfig.contracts.template import MergedTemplateValues, TemplateType
from remoteconfig.core.resolution import TemplateResolutionService
from remoteconfig.core.validation import validate_override_values
from remoteconfig.stores.base import OverrideStore
from remoteconfig.utils.hashing import user_id_to_uuid
from remoteconfig.utils.logging_config import get_logger

logger = get_logger(__name__)


class TemplateService:
    """Cached read-through over :class:`TemplateResolutionService`."""

    def __init__(
        self,
        resolution: TemplateResolutionService,
        override_store: OverrideStore,
        cache: TemplateCacheService,
        publisher: CacheInvalidationPublisher,
    ):
        self.resolution = resolution
        self.override_store = override_store
        self.cache = cache
        self.publisher = publisher

    async def get_merged_system_values(
        self, application_id: str, environment_id: str, identifier: Optional[str] = None
    ) -> MergedTemplateValues:
        cache_id = identifier or ""
        cached = await self.cache.get(application_id, environment_id, TemplateType.SYSTEM, cache_id)
        if cached is not None:
            return cached

        merged = await self.resolution.resolve_system(application_id, environment_id, identifier)
        await self.cache.put(application_id, environment_id, TemplateType.SYSTEM, cache_id, merged)
        return merged

    async def get_merged_user_values(
        self, application_id: str, environment_id: str, user_id: str
    ) -> MergedTemplateValues:
        cached = await self.cache.get(application_id, environment_id, TemplateType.USER, user_id)
        if cached is not None:
            return cached

        merged = await self.resolution.resolve_user(application_id, environment_id, user_id)
        await self.cache.put(application_id, environment_id, TemplateType.USER, user_id, merged)
        return merged

    async def set_user_values(
        self,
        application_id: str,
        environment_id: str,
        user_id: str,
        values: Dict[str, Any],
    ) -> None:
        """Replace the user's override values.

        Raises:
            NotFoundError: the application has no USER template.
            ValidationError: a value violates its field's constraints.
        """
        schema = await self.resolution.get_schema(application_id, TemplateType.USER)
        validate_override_values(values, schema)

        await self.override_store.save_user_override(
            application_id, environment_id, user_id_to_uuid(user_id), dict(values)
        )

        event = CacheInvalidationEvent(
            type=CacheInvalidationType.USER_CHANGE,
            app_id=application_id,
            env_id=environment_id,
            template_type=TemplateType.USER,
            identifier=user_id,
        )
        await self.cache.invalidate(event)
        await self.publisher.publish(event)
        logger.info(
            "Updated user template values",
            application_id=application_id,
            environment_id=environment_id,
            keys=len(values),
        )

    async def get_merged_values(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifiers: Optional[Sequence[str]] = None,
    ) -> MergedTemplateValues:
        """Layer several identifiers in order. Not cached."""
        return await self.resolution.resolve(
            application_id, environment_id, template_type, identifiers
        )
