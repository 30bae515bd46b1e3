"""Resolve effective template values from stored schemas and overrides."""

from typing import List, Optional, Sequence

from remoteconfig.contracts.template import MergedTemplateValues, TemplateSchema, TemplateType
from remoteconfig.core.merge import merge
from remoteconfig.stores.base import OverrideStore, SchemaStore, ValueMap
from remoteconfig.utils.exceptions import NotFoundError
from remoteconfig.utils.hashing import user_id_to_uuid
from remoteconfig.utils.logging_config import get_logger

logger = get_logger(__name__)

# Identifier of the environment-wide default layer.
ENVIRONMENT_DEFAULT_IDENTIFIER = ""


class TemplateResolutionService:
    """Loads a schema and its override layers and merges them.

    Read-only and cache-agnostic: the caching service sits in front of it.
    """

    def __init__(self, schema_store: SchemaStore, override_store: OverrideStore):
        self.schema_store = schema_store
        self.override_store = override_store

    async def get_schema(self, application_id: str, template_type: TemplateType) -> TemplateSchema:
        schema = await self.schema_store.find_schema(application_id, template_type)
        if schema is None:
            raise NotFoundError(
                f"{template_type.value} template not found for application: {application_id}"
            )
        return schema

    async def resolve_system(
        self,
        application_id: str,
        environment_id: str,
        identifier: Optional[str] = None,
    ) -> MergedTemplateValues:
        """Defaults of the SYSTEM template plus at most one identifier override.

        A missing override is not an error; the defaults are returned and no
        identifier is reported as applied.
        """
        schema = await self.get_schema(application_id, TemplateType.SYSTEM)

        layers: List[ValueMap] = []
        applied: List[str] = []
        if identifier is not None and identifier.strip():
            override = await self.override_store.find_override(
                application_id, environment_id, TemplateType.SYSTEM, identifier
            )
            if override is not None:
                layers.append(override)
                applied.append(identifier)

        return MergedTemplateValues(
            application_id=application_id,
            environment_id=environment_id,
            type=TemplateType.SYSTEM,
            template_schema=schema,
            values=merge(schema, layers),
            applied_identifiers=applied,
        )

    async def resolve(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifiers: Optional[Sequence[str]] = None,
    ) -> MergedTemplateValues:
        """Defaults overlaid by the named overrides in caller order.

        The last listed identifier wins on conflicting keys. Identifiers with
        no stored override are skipped, yet still reported in
        ``applied_identifiers``, which mirrors the request.
        """
        schema = await self.get_schema(application_id, template_type)
        requested = list(identifiers or [])

        layers: List[ValueMap] = []
        if requested:
            layers = await self.override_store.find_overrides(
                application_id, environment_id, template_type, requested
            )

        logger.debug(
            "Resolved template values",
            application_id=application_id,
            environment_id=environment_id,
            template_type=template_type.value,
            requested=len(requested),
            matched=len(layers),
        )

        return MergedTemplateValues(
            application_id=application_id,
            environment_id=environment_id,
            type=template_type,
            template_schema=schema,
            values=merge(schema, layers),
            applied_identifiers=requested,
        )

    async def resolve_user(
        self, application_id: str, environment_id: str, user_id: str
    ) -> MergedTemplateValues:
        """USER template: defaults, then environment default, then the user's override."""
        schema = await self.get_schema(application_id, TemplateType.USER)

        environment_default = await self.override_store.find_override(
            application_id, environment_id, TemplateType.USER, ENVIRONMENT_DEFAULT_IDENTIFIER
        )
        user_override = await self.override_store.find_user_override(
            application_id, environment_id, user_id_to_uuid(user_id)
        )

        return MergedTemplateValues(
            application_id=application_id,
            environment_id=environment_id,
            type=TemplateType.USER,
            template_schema=schema,
            values=merge(schema, [environment_default, user_override]),
            applied_identifiers=[user_id],
        )
