"""Wire contracts shared by the read and write sides."""

from remoteconfig.contracts.cache import (
    INVALIDATION_CHANNEL,
    CacheInvalidationEvent,
    CacheInvalidationType,
)
from remoteconfig.contracts.error_spec import ErrorCode, ErrorResponse
from remoteconfig.contracts.template import (
    BooleanTemplateField,
    EnumTemplateField,
    FieldType,
    MergedTemplateValues,
    NumberTemplateField,
    StringTemplateField,
    TemplateField,
    TemplateSchema,
    TemplateType,
    TemplateValuesResponse,
)

__all__ = [
    "INVALIDATION_CHANNEL",
    "CacheInvalidationEvent",
    "CacheInvalidationType",
    "ErrorCode",
    "ErrorResponse",
    "BooleanTemplateField",
    "EnumTemplateField",
    "FieldType",
    "MergedTemplateValues",
    "NumberTemplateField",
    "StringTemplateField",
    "TemplateField",
    "TemplateSchema",
    "TemplateType",
    "TemplateValuesResponse",
]
