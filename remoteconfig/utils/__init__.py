"""Shared utilities: settings, logging, Redis client and exceptions."""

from remoteconfig.utils.exceptions import (
    APIException,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RateLimitExceededError,
    ServiceUnavailableError,
    ValidationError,
)
from remoteconfig.utils.logging_config import configure_structured_logging, get_logger

__all__ = [
    "APIException",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "RateLimitExceededError",
    "ServiceUnavailableError",
    "ValidationError",
    "configure_structured_logging",
    "get_logger",
]
