"""
Template write path used by the management side.

Every mutation is persisted first and then announced on the invalidation
bus, so read-side caches drop the affected entries.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from remoteconfig.cache.cleanup import NoOpRedisCleanupService, RedisCleanupService
from remoteconfig.cache.invalidation import CacheInvalidationPublisher
from remoteconfig.contracts.template import TemplateSchema, TemplateType
from remoteconfig.core.validation import validate_override_values
from remoteconfig.stores.base import OverrideStore, SchemaStore
from remoteconfig.utils.exceptions import NotFoundError, ValidationError
from remoteconfig.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CopyOverridesResult:
    copied: int
    skipped: int


def _bus_identifier(identifier: str) -> Optional[str]:
    # The environment default layer sits under every identifier of its type.
    return identifier or None


class TemplateAdminService:
    """Schema and override mutations with cache invalidation."""

    def __init__(
        self,
        schema_store: SchemaStore,
        override_store: OverrideStore,
        publisher: CacheInvalidationPublisher,
        cleanup: Optional[RedisCleanupService] = None,
    ):
        self.schema_store = schema_store
        self.override_store = override_store
        self.publisher = publisher
        self.cleanup = cleanup or NoOpRedisCleanupService()

    async def update_schema(
        self, application_id: str, template_type: TemplateType, schema: TemplateSchema
    ) -> None:
        await self.schema_store.save_schema(application_id, template_type, schema)
        await self.publisher.publish_schema_change(application_id, template_type)
        logger.info(
            "Template schema updated",
            application_id=application_id,
            template_type=template_type.value,
            fields=len(schema.fields),
        )

    async def set_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
        values: Dict[str, Any],
    ) -> None:
        """Create or replace one override. ``identifier=""`` is the environment default."""
        schema = await self.schema_store.find_schema(application_id, template_type)
        if schema is None:
            raise NotFoundError(
                f"{template_type.value} template not found for application: {application_id}"
            )
        validate_override_values(values, schema)

        await self.override_store.save_override(
            application_id, environment_id, template_type, identifier, dict(values)
        )
        await self.publisher.publish_override_change(
            application_id, environment_id, template_type, _bus_identifier(identifier)
        )

    async def delete_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
    ) -> None:
        deleted = await self.override_store.delete_override(
            application_id, environment_id, template_type, identifier
        )
        if not deleted:
            raise NotFoundError(f"Override not found for identifier: {identifier}")

        await self.publisher.publish_override_change(
            application_id, environment_id, template_type, _bus_identifier(identifier)
        )

    async def delete_environment(self, application_id: str, environment_id: str) -> int:
        """Drop every override of the environment and its Redis state.

        Returns the number of overrides removed.
        """
        removed = await self.override_store.delete_environment(application_id, environment_id)
        await self.publisher.publish_environment_deleted(application_id, environment_id)
        await self.cleanup.cleanup_environment_keys(environment_id)
        logger.info(
            "Environment deleted",
            application_id=application_id,
            environment_id=environment_id,
            overrides_removed=removed,
        )
        return removed

    async def copy_overrides(
        self,
        application_id: str,
        source_environment_id: str,
        target_environment_id: str,
        types: Optional[Sequence[TemplateType]] = None,
        identifiers: Optional[Sequence[str]] = None,
        overwrite: bool = False,
    ) -> CopyOverridesResult:
        """Copy overrides between environments of one application.

        ``types`` and ``identifiers`` narrow what is copied; empty means all.
        Overrides already present in the target are skipped unless
        ``overwrite`` is set.
        """
        if source_environment_id == target_environment_id:
            raise ValidationError("Source and target environments must be different")

        copied = 0
        skipped = 0
        for template_type in types or list(TemplateType):
            source = await self.override_store.list_overrides(
                application_id, source_environment_id, template_type
            )
            for identifier, values in source.items():
                if identifiers and identifier not in identifiers:
                    continue

                existing = await self.override_store.find_override(
                    application_id, target_environment_id, template_type, identifier
                )
                if existing is not None and not overwrite:
                    skipped += 1
                    continue

                await self.override_store.save_override(
                    application_id, target_environment_id, template_type, identifier, values
                )
                await self.publisher.publish_override_change(
                    application_id,
                    target_environment_id,
                    template_type,
                    _bus_identifier(identifier),
                )
                copied += 1

        logger.info(
            "Copied overrides",
            application_id=application_id,
            source_environment_id=source_environment_id,
            target_environment_id=target_environment_id,
            copied=copied,
            skipped=skipped,
        )
        return CopyOverridesResult(copied=copied, skipped=skipped)
