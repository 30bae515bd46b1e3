"""In-process stores for local runs and tests."""

import asyncio
import copy
from typing import Dict, List, Optional, Sequence, Tuple

from remoteconfig.contracts.template import TemplateSchema, TemplateType
from remoteconfig.stores.base import ApiKeyContext, ValueMap
from remoteconfig.utils.hashing import hash_api_key


class InMemoryTemplateStore:
    """Schema and override store backed by dictionaries.

    Values are deep-copied on the way in and out so callers can never
    mutate stored state.
    """

    def __init__(self):
        self._schemas: Dict[Tuple[str, TemplateType], TemplateSchema] = {}
        self._overrides: Dict[Tuple[str, str, TemplateType, str], ValueMap] = {}
        self._user_overrides: Dict[Tuple[str, str, str], ValueMap] = {}
        self._lock = asyncio.Lock()

    async def find_schema(
        self, application_id: str, template_type: TemplateType
    ) -> Optional[TemplateSchema]:
        return self._schemas.get((application_id, template_type))

    async def save_schema(
        self, application_id: str, template_type: TemplateType, schema: TemplateSchema
    ) -> None:
        async with self._lock:
            self._schemas[(application_id, template_type)] = schema

    async def find_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
    ) -> Optional[ValueMap]:
        values = self._overrides.get((application_id, environment_id, template_type, identifier))
        return copy.deepcopy(values) if values is not None else None

    async def find_overrides(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifiers: Sequence[str],
    ) -> List[ValueMap]:
        layers = []
        for identifier in identifiers:
            values = await self.find_override(
                application_id, environment_id, template_type, identifier
            )
            if values is not None:
                layers.append(values)
        return layers

    async def list_overrides(
        self, application_id: str, environment_id: str, template_type: TemplateType
    ) -> Dict[str, ValueMap]:
        return {
            identifier: copy.deepcopy(values)
            for (app, env, kind, identifier), values in self._overrides.items()
            if app == application_id and env == environment_id and kind == template_type
        }

    async def save_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
        values: ValueMap,
    ) -> None:
        async with self._lock:
            key = (application_id, environment_id, template_type, identifier)
            self._overrides[key] = copy.deepcopy(values)

    async def delete_override(
        self,
        application_id: str,
        environment_id: str,
        template_type: TemplateType,
        identifier: str,
    ) -> bool:
        async with self._lock:
            key = (application_id, environment_id, template_type, identifier)
            return self._overrides.pop(key, None) is not None

    async def delete_environment(self, application_id: str, environment_id: str) -> int:
        async with self._lock:
            override_keys = [
                key for key in self._overrides
                if key[0] == application_id and key[1] == environment_id
            ]
            user_keys = [
                key for key in self._user_overrides
                if key[0] == application_id and key[1] == environment_id
            ]
            for key in override_keys:
                del self._overrides[key]
            for key in user_keys:
                del self._user_overrides[key]
            return len(override_keys) + len(user_keys)

    async def find_user_override(
        self, application_id: str, environment_id: str, user_key: str
    ) -> Optional[ValueMap]:
        values = self._user_overrides.get((application_id, environment_id, user_key))
        return copy.deepcopy(values) if values is not None else None

    async def save_user_override(
        self, application_id: str, environment_id: str, user_key: str, values: ValueMap
    ) -> None:
        async with self._lock:
            self._user_overrides[(application_id, environment_id, user_key)] = copy.deepcopy(values)


class InMemoryApiKeyStore:
    """API keys registered in memory, looked up by SHA-256 hash."""

    def __init__(self):
        self._keys: Dict[str, ApiKeyContext] = {}

    def register(self, api_key: str, context: ApiKeyContext) -> None:
        self._keys[hash_api_key(api_key)] = context

    async def find_by_hash(self, key_hash: str) -> Optional[ApiKeyContext]:
        return self._keys.get(key_hash)
