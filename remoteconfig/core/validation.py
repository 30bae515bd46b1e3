"""Validate override values against a template schema."""

from typing import Any, Mapping

from remoteconfig.contracts.template import (
    BooleanTemplateField,
    EnumTemplateField,
    NumberTemplateField,
    StringTemplateField,
    TemplateSchema,
    is_increment_aligned,
)
from remoteconfig.utils.exceptions import ValidationError


def validate_override_values(values: Mapping[str, Any], schema: TemplateSchema) -> None:
    """Check every value whose key is defined by ``schema``.

    Keys the schema does not define are accepted so clients can write values
    ahead of a schema change.

    Raises:
        ValidationError: naming the first field whose value violates its constraints.
    """
    fields = schema.field_map()
    for key, value in values.items():
        field = fields.get(key)
        if field is None:
            continue
        if isinstance(field, StringTemplateField):
            _validate_string(key, value, field)
        elif isinstance(field, NumberTemplateField):
            _validate_number(key, value, field)
        elif isinstance(field, BooleanTemplateField):
            _validate_boolean(key, value)
        elif isinstance(field, EnumTemplateField):
            _validate_enum(key, value, field)


def _type_name(value: Any) -> str:
    return type(value).__name__


def _validate_string(key: str, value: Any, field: StringTemplateField) -> None:
    if not isinstance(value, str):
        raise ValidationError(
            f"Field '{key}' expects a string value, but got {_type_name(value)}", field=key
        )
    length = len(value)
    if length < field.min_length:
        raise ValidationError(
            f"Field '{key}' value length ({length}) is below minLength ({field.min_length})",
            field=key,
        )
    if length > field.max_length:
        raise ValidationError(
            f"Field '{key}' value length ({length}) exceeds maxLength ({field.max_length})",
            field=key,
        )


def _validate_number(key: str, value: Any, field: NumberTemplateField) -> None:
    # bool is an int subclass but never a valid number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"Field '{key}' expects a number value, but got {_type_name(value)}", field=key
        )
    number = float(value)
    if number < field.min_value:
        raise ValidationError(
            f"Field '{key}' value ({number:.2f}) is below minValue ({field.min_value:.2f})",
            field=key,
        )
    if number > field.max_value:
        raise ValidationError(
            f"Field '{key}' value ({number:.2f}) exceeds maxValue ({field.max_value:.2f})",
            field=key,
        )
    if not is_increment_aligned(number, field.min_value, field.increment_amount):
        raise ValidationError(
            f"Field '{key}' value ({number:.2f}) must align with incrementAmount "
            f"({field.increment_amount:.2f}) starting from minValue ({field.min_value:.2f})",
            field=key,
        )


def _validate_boolean(key: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise ValidationError(
            f"Field '{key}' expects a boolean value, but got {_type_name(value)}", field=key
        )


def _validate_enum(key: str, value: Any, field: EnumTemplateField) -> None:
    if not isinstance(value, str):
        raise ValidationError(
            f"Field '{key}' expects a string value (from enum options), "
            f"but got {_type_name(value)}",
            field=key,
        )
    if value not in field.options:
        raise ValidationError(
            f"Field '{key}' value '{value}' is not in the allowed options: {field.options}",
            field=key,
        )
