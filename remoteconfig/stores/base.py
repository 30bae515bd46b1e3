"""Store interfaces consumed by the resolution and admin services.

Relational persistence lives outside this package; anything implementing
these protocols can back the services.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from remoteconfig.contracts.template import TemplateSchema, TemplateType

ValueMap = Dict[str, Any]


class KeyType(str, Enum):
    """API key permission level."""
    READ = "READ"
    WRITE = "WRITE"


@dataclass(frozen=True)
class ApiKeyContext:
    """Caller identity resolved from an API key."""
    api_key_id: str
    application_id: str
    environment_id: str
    key_type: KeyType = KeyType.READ
    rate_limit_per_second: int = 1000
    requests_per_month: int = 1_000_000

    @property
    def can_write(self) -> bool:
        return self.key_type is KeyType.WRITE


class SchemaStore(Protocol):
    async def find_schema(
        self, application_id: str, template_type: TemplateType
    ) -> Optional[TemplateSchema]:
        ...

    async def save_schema(
        self, application_id: str, template_type: TemplateType, schema: TemplateSchema
    ) -> None:
        ...


class OverrideStore(Protocol):
    async def find_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
    ) -> Optional[ValueMap]:
        ...

    async def find_overrides(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifiers: Sequence[str],
    ) -> List[ValueMap]:
        """Values of the stored overrides, in the order of ``identifiers``.

        Identifiers without a stored override contribute nothing.
        """
        ...

    async def list_overrides(
        self, application_id: str, environment_id: str, template_type: TemplateType
    ) -> Dict[str, ValueMap]:
        ...

    async def save_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
        values: ValueMap,
    ) -> None:
        ...

    async def delete_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
    ) -> bool:
        ...

    async def delete_environment(self, application_id: str, environment_id: str) -> int:
        ...

    async def find_user_override(
        self, application_id: str, environment_id: str, user_key: str
    ) -> Optional[ValueMap]:
        ...

    async def save_user_override(
        self, application_id: str, environment_id: str, user_key: str, values: ValueMap
    ) -> None:
        ...


class ApiKeyStore(Protocol):
    async def find_by_hash(self, key_hash: str) -> Optional[ApiKeyContext]:
        ...
