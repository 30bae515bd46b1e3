"""
Cache Invalidation Contract

Message published on the invalidation channel whenever template data changes.
Null ``env_id`` and ``identifier`` are meaningful (they widen the invalidation
pattern to a wildcard) so they are always serialized, never omitted.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from remoteconfig.contracts.template import TemplateType

INVALIDATION_CHANNEL = "template:invalidate"


class CacheInvalidationType(str, Enum):
    """Kind of change that triggered an invalidation.

    SCHEMA_CHANGE invalidates every cached response for the app and template type.
    OVERRIDE_CHANGE invalidates one identifier, or a whole environment scope.
    USER_CHANGE invalidates one user's USER template response.
    """
    SCHEMA_CHANGE = "SCHEMA_CHANGE"
    OVERRIDE_CHANGE = "OVERRIDE_CHANGE"
    USER_CHANGE = "USER_CHANGE"


class CacheInvalidationEvent(BaseModel):
    """Invalidation message exchanged over pub/sub."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    type: CacheInvalidationType = Field(..., description="Type of change")
    app_id: str = Field(..., description="Application identifier")
    env_id: Optional[str] = Field(None, description="Environment identifier, null for all")
    template_type: TemplateType = Field(..., description="Affected template type")
    identifier: Optional[str] = Field(None, description="Override identifier, null for all")

    def to_message(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_message(cls, message: str) -> "CacheInvalidationEvent":
        return cls.model_validate_json(message)
