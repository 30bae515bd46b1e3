"""
Template Contract

Pydantic models for template schemas, field definitions and merged values.
Field definitions form a closed union discriminated by ``type``; each variant
carries only the constraints that apply to it and validates them at
construction time.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class FieldType(str, Enum):
    """Template field data types."""
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    ENUM = "ENUM"


class TemplateType(str, Enum):
    """Template kinds. SYSTEM is app-level config, USER is per end-user settings."""
    SYSTEM = "SYSTEM"
    USER = "USER"


def is_increment_aligned(value: float, min_value: float, increment_amount: float) -> bool:
    """Whether ``value`` is reachable from ``min_value`` in whole increments."""
    remainder = abs((value - min_value) % increment_amount)
    tolerance = increment_amount * 1e-9
    return remainder <= tolerance or remainder >= increment_amount - tolerance


class _TemplateFieldBase(BaseModel):
    """Attributes shared by every field variant."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    key: str = Field(..., description="Unique field identifier within the schema")
    description: Optional[str] = Field(None, description="Human-readable description")
    editable: bool = Field(False, description="Whether end users may modify this field")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field key is required")
        return v


class StringTemplateField(_TemplateFieldBase):
    """Text field with length constraints."""

    type: Literal["STRING"] = "STRING"
    default_value: Optional[str] = None
    min_length: int = Field(0, ge=0, description="Minimum length, inclusive")
    max_length: int = Field(..., gt=0, description="Maximum length, inclusive")

    @model_validator(mode="after")
    def validate_constraints(self) -> "StringTemplateField":
        if self.min_length > self.max_length:
            raise ValueError("minLength must be less than or equal to maxLength")
        if self.default_value is not None:
            length = len(self.default_value)
            if length < self.min_length:
                raise ValueError(
                    f"defaultValue length ({length}) must be at least minLength ({self.min_length})"
                )
            if length > self.max_length:
                raise ValueError(
                    f"defaultValue length ({length}) must be at most maxLength ({self.max_length})"
                )
        return self


class NumberTemplateField(_TemplateFieldBase):
    """Numeric field with range and increment constraints."""

    type: Literal["NUMBER"] = "NUMBER"
    default_value: Optional[Union[StrictInt, StrictFloat]] = None
    min_value: float = Field(..., description="Minimum allowed value")
    max_value: float = Field(..., description="Maximum allowed value")
    increment_amount: float = Field(..., gt=0, description="Step size for value changes")

    @model_validator(mode="after")
    def validate_constraints(self) -> "NumberTemplateField":
        if self.min_value > self.max_value:
            raise ValueError("minValue must be less than or equal to maxValue")
        if self.default_value is not None:
            val = float(self.default_value)
            if val < self.min_value:
                raise ValueError(
                    f"defaultValue ({val}) must be at least minValue ({self.min_value})"
                )
            if val > self.max_value:
                raise ValueError(
                    f"defaultValue ({val}) must be at most maxValue ({self.max_value})"
                )
            if not is_increment_aligned(val, self.min_value, self.increment_amount):
                raise ValueError(
                    f"defaultValue ({val}) must align with incrementAmount "
                    f"({self.increment_amount}) starting from minValue ({self.min_value})"
                )
        return self


class BooleanTemplateField(_TemplateFieldBase):
    """Boolean field with no additional constraints."""

    type: Literal["BOOLEAN"] = "BOOLEAN"
    default_value: Optional[bool] = None


class EnumTemplateField(_TemplateFieldBase):
    """Selection from a fixed list of options."""

    type: Literal["ENUM"] = "ENUM"
    default_value: Optional[str] = None
    options: List[str] = Field(..., min_length=1, description="Allowed values")

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: List[str]) -> List[str]:
        if any(not option or not option.strip() for option in v):
            raise ValueError("options must contain non-blank strings")
        return v

    @model_validator(mode="after")
    def validate_default(self) -> "EnumTemplateField":
        if self.default_value is not None and self.default_value not in self.options:
            raise ValueError(
                f"defaultValue ({self.default_value!r}) must be one of options {self.options}"
            )
        return self


TemplateField = Annotated[
    Union[StringTemplateField, NumberTemplateField, BooleanTemplateField, EnumTemplateField],
    Field(discriminator="type"),
]


class TemplateSchema(BaseModel):
    """Ordered field definitions of one template."""

    model_config = ConfigDict(frozen=True)

    fields: List[TemplateField] = Field(default_factory=list)

    @field_validator("fields")
    @classmethod
    def validate_unique_keys(cls, v: List[Any]) -> List[Any]:
        seen = set()
        for field in v:
            if field.key in seen:
                raise ValueError(f"Duplicate field key: {field.key}")
            seen.add(field.key)
        return v

    def field_map(self) -> Dict[str, Any]:
        return {field.key: field for field in self.fields}

    def default_values(self) -> Dict[str, Any]:
        """Map of key to default value, in field order, skipping null defaults."""
        return {
            field.key: field.default_value
            for field in self.fields
            if field.default_value is not None
        }


class MergedTemplateValues(BaseModel):
    """Resolved values for one (application, environment, type) request.

    This is the cache payload. ``applied_identifiers`` lists the override
    layers the resolution was asked to (or did) apply, in application order.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    application_id: str = Field(..., description="Application identifier")
    environment_id: str = Field(..., description="Environment identifier")
    type: TemplateType = Field(..., description="Template type")
    template_schema: TemplateSchema = Field(..., alias="schema")
    values: Dict[str, Any] = Field(default_factory=dict, description="Merged values")
    applied_identifiers: List[str] = Field(default_factory=list)

    @property
    def applied_identifier(self) -> Optional[str]:
        """Last applied identifier, the one that won on conflicting keys."""
        return self.applied_identifiers[-1] if self.applied_identifiers else None


class TemplateValuesResponse(BaseModel):
    """Response body of the SDK-facing template endpoints."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    type: TemplateType
    template_schema: TemplateSchema = Field(..., alias="schema")
    values: Dict[str, Any]
    applied_identifier: Optional[str] = None

    @classmethod
    def from_merged(cls, merged: MergedTemplateValues) -> "TemplateValuesResponse":
        return cls(
            type=merged.type,
            template_schema=merged.template_schema,
            values=merged.values,
            applied_identifier=merged.applied_identifier,
        )
