"""Persistence collaborators for schemas, overrides and API keys."""

from remoteconfig.stores.base import ApiKeyContext, ApiKeyStore, OverrideStore, SchemaStore
from remoteconfig.stores.memory import InMemoryApiKeyStore, InMemoryTemplateStore

__all__ = [
    "ApiKeyContext",
    "ApiKeyStore",
    "OverrideStore",
    "SchemaStore",
    "InMemoryApiKeyStore",
    "InMemoryTemplateStore",
]
