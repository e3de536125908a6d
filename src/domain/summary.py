"""Readable labels for stored registration values (summary step)."""

from collections.abc import Mapping
from typing import Optional

from .schema import FieldType, FormSchema, Value


def readable_values(schema: FormSchema, data: Mapping[str, Optional[Value]]) -> dict[str, str]:
    """
    Convert stored values to display text.

    Select values show their option label ("City|State" values are looked
    up by city), checkboxes show Yes/No, everything else is stringified.
    Keys without a field definition are kept as-is.
    """
    readable: dict[str, str] = {}
    for field_id, value in data.items():
        field = schema.get(field_id)
        if field is None:
            readable[field_id] = "" if value is None else str(value)
        elif field.type == FieldType.CHECKBOX:
            readable[field_id] = "Yes" if value else "No"
        elif field.type == FieldType.SELECT:
            if value is None or value == "":
                readable[field_id] = ""
                continue
            search = str(value).split("|")[0]
            label = next(
                (o.label for o in field.options if o.value in (search, str(value)) and o.label),
                None,
            )
            readable[field_id] = label or str(value)
        else:
            readable[field_id] = "" if value is None else str(value)
    return readable


def field_labels(schema: FormSchema) -> dict[str, str]:
    return {f.id: f.label or f.id for f in schema.ordered_fields}
