"""Deterministic hashing helpers for API keys and user identifiers."""

import hashlib
import uuid

_USER_ID_PREFIX = "remoteconfig:user:"


def hash_api_key(api_key: str) -> str:
    """SHA-256 hex digest of an API key; keys are stored and looked up hashed."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def user_id_to_uuid(user_id: str) -> str:
    """Map any customer user identifier to a stable UUID string."""
    return str(uuid.uuid3(uuid.NAMESPACE_OID, _USER_ID_PREFIX + user_id))
