"""
Form schema - Declarative description of an organization's registration form.

A schema is an ordered list of field definitions. Each field carries its
input type, validation constraints, conditional-visibility rules, an
optional parent link (``depends_on``) for cascades, and flags that say
whether it is hard-hidden, computed, or used for identity matching.

Schemas are loaded once per organization and are treated as immutable;
``check_schema`` rejects configurations the rule engine cannot honour.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from .exceptions import ConfigurationError

Value = Union[str, int, float, bool]
ValueSet = dict[str, Value]


class FieldType(str, Enum):
    """Input type of a form field."""

    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"


class OptionsSource(str, Enum):
    """Where a select field gets its options from."""

    MANUAL = "manual"
    COUNTRIES = "countries"
    STATES = "states"
    CITIES = "cities"


class RuleAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"


class RuleLogic(str, Enum):
    AND = "and"
    OR = "or"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


class Calculation(str, Enum):
    """
    How an auto-calculated field derives its value from its parent.

    - DIAL_CODE: international dial code of the selected country ("+57")
    - STATE_FROM_CITY: state/department of the selected city
    - PARENT_OPTION: ``parent_value`` of the option selected in the parent
    """

    DIAL_CODE = "dial_code"
    STATE_FROM_CITY = "state_from_city"
    PARENT_OPTION = "parent_option"


@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str = ""
    parent_value: Optional[str] = None


@dataclass(frozen=True)
class FieldValidation:
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class Condition:
    field: str
    operator: Operator
    value: Value = ""


@dataclass(frozen=True)
class ConditionalRule:
    action: RuleAction
    conditions: tuple[Condition, ...] = ()
    logic: RuleLogic = RuleLogic.AND


@dataclass(frozen=True)
class FieldDefinition:
    """A single form field."""

    id: str
    type: FieldType
    label: str
    order: int
    required: bool = False
    options: tuple[FieldOption, ...] = ()
    validation: FieldValidation = field(default_factory=FieldValidation)
    default_value: Optional[Value] = None
    hidden: bool = False
    auto_calculated: bool = False
    depends_on: Optional[str] = None
    is_identifier: bool = False
    conditional_logic: tuple[ConditionalRule, ...] = ()
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options_source: OptionsSource = OptionsSource.MANUAL
    calculation: Optional[Calculation] = None

    @property
    def empty_value(self) -> Value:
        """Value stored for a field the user has not filled."""
        return False if self.type == FieldType.CHECKBOX else ""


@dataclass(frozen=True)
class FormSchema:
    """An organization's registration form."""

    fields: tuple[FieldDefinition, ...]
    enabled: bool = True
    title: Optional[str] = None
    description: Optional[str] = None
    success_message: Optional[str] = None
    submit_button_text: Optional[str] = None

    @property
    def ordered_fields(self) -> list[FieldDefinition]:
        # sorted() is stable, so schema position breaks ties on ``order``
        return sorted(self.fields, key=lambda f: f.order)

    @property
    def identifier_fields(self) -> list[FieldDefinition]:
        return [f for f in self.ordered_fields if f.is_identifier]

    @property
    def has_identifiers(self) -> bool:
        return any(f.is_identifier for f in self.fields)

    def get(self, field_id: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def first(self, predicate: Callable[[FieldDefinition], bool]) -> Optional[FieldDefinition]:
        """First field in display order matching ``predicate``."""
        for f in self.ordered_fields:
            if predicate(f):
                return f
        return None


def _mentions(f: FieldDefinition, *needles: str) -> bool:
    haystack = f"{f.id} {f.label}".lower()
    return any(n in haystack for n in needles)


def is_country_field(f: FieldDefinition) -> bool:
    if f.options_source == OptionsSource.COUNTRIES:
        return True
    ident = f.id.lower()
    return ("pais" in ident or "country" in ident) and not (
        "codigo" in ident or "code" in ident
    )


def is_state_field(f: FieldDefinition) -> bool:
    if f.options_source == OptionsSource.STATES:
        return True
    return _mentions(f, "estado", "departamento", "state")


def is_city_field(f: FieldDefinition) -> bool:
    if f.options_source == OptionsSource.CITIES:
        return True
    return _mentions(f, "ciudad", "city")


def is_dial_code_field(f: FieldDefinition) -> bool:
    ident = f.id.lower()
    return (
        "indicativo" in ident
        or "codigo_pais" in ident
        or "dial_code" in ident
        or "countrycode" in ident
        or "código" in f.label.lower()
    )


def calculation_for(schema: FormSchema, f: FieldDefinition) -> Optional[Calculation]:
    """
    Derivation kind for an auto-calculated field.

    An explicit ``calculation`` wins; otherwise it is inferred from the
    parent and field naming (country parent + dial-code field, city parent
    + state field), falling back to the parent option's ``parent_value``.
    """
    if not f.auto_calculated or f.depends_on is None:
        return None
    if f.calculation is not None:
        return f.calculation
    parent = schema.get(f.depends_on)
    if parent is None:
        return None
    if is_country_field(parent) and is_dial_code_field(f):
        return Calculation.DIAL_CODE
    if is_city_field(parent) and is_state_field(f):
        return Calculation.STATE_FROM_CITY
    return Calculation.PARENT_OPTION


def dependency_depth(schema: FormSchema) -> int:
    """Length of the longest ``depends_on`` chain (0 when there are none)."""
    depth = 0
    for f in schema.fields:
        length = 0
        current = f
        while current is not None and current.depends_on is not None:
            length += 1
            if length > len(schema.fields):
                raise ConfigurationError(f"Dependency cycle through field {f.id!r}")
            current = schema.get(current.depends_on)
        depth = max(depth, length)
    return depth


def check_schema(schema: FormSchema) -> FormSchema:
    """
    Reject schemas the rule engine cannot evaluate deterministically.

    Raises:
        ConfigurationError: duplicate ids, unknown or self ``depends_on``,
            dependency cycles, conditions on unknown fields, auto-calculated
            fields without a parent, identifier fields that are hard-hidden,
            invalid validation patterns
    """
    seen: set[str] = set()
    for f in schema.fields:
        if f.id in seen:
            raise ConfigurationError(f"Duplicate field id {f.id!r}")
        seen.add(f.id)

    for f in schema.fields:
        if f.depends_on is not None:
            if f.depends_on == f.id:
                raise ConfigurationError(f"Field {f.id!r} depends on itself")
            if f.depends_on not in seen:
                raise ConfigurationError(
                    f"Field {f.id!r} depends on unknown field {f.depends_on!r}"
                )
        if f.auto_calculated and f.depends_on is None:
            raise ConfigurationError(f"Auto-calculated field {f.id!r} has no parent field")
        if f.is_identifier and f.hidden:
            raise ConfigurationError(f"Identifier field {f.id!r} cannot be hidden")
        if f.validation.pattern:
            try:
                re.compile(f.validation.pattern)
            except re.error as e:
                raise ConfigurationError(f"Field {f.id!r} has an invalid pattern: {e}") from e
        for rule in f.conditional_logic:
            for condition in rule.conditions:
                if condition.field not in seen:
                    raise ConfigurationError(
                        f"Field {f.id!r} has a condition on unknown field {condition.field!r}"
                    )

    dependency_depth(schema)
    return schema
