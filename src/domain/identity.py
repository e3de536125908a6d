"""
Identity records and the outcome of identifier matching.

The backend matching service classifies a set of identifier values into
exactly one of four outcomes; the flow controller branches on the type.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional, Union

from .schema import FieldType, FormSchema, Value, ValueSet

_TRUE_WORDS = {"true", "1", "on", "si", "sí", "yes"}
_FALSE_WORDS = {"false", "0", "off", "no"}


@dataclass(frozen=True)
class Attendee:
    """Identity record scoped to an organization."""

    id: str
    organization_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    registration_data: ValueSet = field(default_factory=dict)


@dataclass(frozen=True)
class EventUser:
    """Registration of an attendee for one event."""

    id: str
    event_id: str
    attendee_id: str
    email: Optional[str] = None
    status: str = "registered"


@dataclass(frozen=True)
class NotFound:
    message: Optional[str] = None


@dataclass(frozen=True)
class InvalidFields:
    mismatched: tuple[str, ...]


@dataclass(frozen=True)
class OrgOnly:
    attendee: Attendee


@dataclass(frozen=True)
class EventRegistered:
    attendee: Attendee
    event_user: EventUser


IdentityMatchResult = Union[NotFound, InvalidFields, OrgOnly, EventRegistered]


@dataclass(frozen=True)
class FoundRegistration:
    found: bool
    attendee: Optional[Attendee] = None
    event_user: Optional[EventUser] = None

    @property
    def is_registered(self) -> bool:
        return self.event_user is not None


def normalize_identifier(raw: Value, field_type: Optional[FieldType]) -> Value:
    """
    Normalize a typed identifier for matching.

    Strings are trimmed; number fields become int/float when parseable;
    checkbox fields accept yes/no words.
    """
    if not isinstance(raw, str):
        return raw
    value = raw.strip()
    if field_type == FieldType.NUMBER:
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    if field_type == FieldType.CHECKBOX:
        lowered = value.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
    return value


def identifier_values(schema: FormSchema, values: Mapping[str, Value]) -> ValueSet:
    """Restrict ``values`` to identifier fields, normalized by field type."""
    return {
        f.id: normalize_identifier(values.get(f.id, f.empty_value), f.type)
        for f in schema.identifier_fields
    }


def resolve_attendee_email(attendee: Attendee) -> Optional[str]:
    """
    Email address of an attendee.

    Checks the record's email, then the ``email_system`` and ``email``
    form values, then any form value that looks like an address.
    """
    if attendee.email:
        return attendee.email
    data = attendee.registration_data
    for key in ("email_system", "email"):
        candidate = data.get(key)
        if isinstance(candidate, str) and candidate:
            return candidate
    for candidate in data.values():
        if isinstance(candidate, str) and "@" in candidate:
            return candidate
    return None
