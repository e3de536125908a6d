"""
Form validator - Field checks applied on submit.

Only fields that are currently visible are checked; a field the visitor
cannot see never blocks submission. Format checks (pattern, length,
numeric bounds, email syntax) run only when a value is present.
"""

import re
from collections.abc import Mapping
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .rules import is_effectively_visible, is_empty
from .schema import FieldDefinition, FieldType, FormSchema, Value


def _as_number(value: Value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _check_field(field: FieldDefinition, value: Optional[Value]) -> Optional[str]:
    missing = is_empty(value) or (field.type == FieldType.CHECKBOX and value is False)
    if missing:
        return f"{field.label} is required" if field.required else None

    rules = field.validation

    if field.type == FieldType.NUMBER:
        number = _as_number(value)
        if number is None:
            return f"{field.label} must be a number"
        if rules.min is not None and number < rules.min:
            return f"{field.label} must be at least {rules.min:g}"
        if rules.max is not None and number > rules.max:
            return f"{field.label} must be at most {rules.max:g}"

    if isinstance(value, bool):
        return None
    text = str(value)

    if rules.min_length is not None and len(text) < rules.min_length:
        return f"{field.label} must have at least {rules.min_length} characters"
    if rules.max_length is not None and len(text) > rules.max_length:
        return f"{field.label} must have at most {rules.max_length} characters"
    if rules.pattern and re.search(rules.pattern, text) is None:
        return f"{field.label} has an invalid format"

    if field.type == FieldType.EMAIL:
        try:
            validate_email(text, check_deliverability=False)
        except EmailNotValidError:
            return f"{field.label} must be a valid email address"

    return None


def validate(schema: FormSchema, values: Mapping[str, Value]) -> dict[str, str]:
    """
    Validate the visible fields of a form.

    Args:
        schema: Form definition
        values: Current value set

    Returns:
        Mapping of field id to error message; empty when the values are valid
    """
    errors: dict[str, str] = {}
    for field in schema.ordered_fields:
        if not is_effectively_visible(field, values, schema.fields):
            continue
        message = _check_field(field, values.get(field.id))
        if message is not None:
            errors[field.id] = message
    return errors
