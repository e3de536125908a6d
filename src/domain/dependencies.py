"""
Dependency resolver - Derived values for cascading and computed fields.

``recompute`` looks at the whole value set and returns only the fields
whose stored value must change:

- auto-calculated fields get the value derived from their parent
  (dial code of a country, state of a city, ``parent_value`` of the
  selected parent option); these fields are never user-editable
- dependent selects whose current value is no longer offered for the
  parent's value are reset
- fields hidden by their rules take their ``default_value`` so the stored
  record stays a complete snapshot

The result is a fixed point: applying it and recomputing again yields
an empty update.
"""

import asyncio
import time
from collections.abc import Mapping
from typing import Callable, Optional

from .catalogs import country_options, dial_code, resolve_country_code, state_for_city, state_options
from .exceptions import ConfigurationError
from .rules import is_empty, is_visible
from .schema import (
    Calculation,
    FieldDefinition,
    FieldOption,
    FieldType,
    FormSchema,
    OptionsSource,
    Value,
    ValueSet,
    calculation_for,
    is_country_field,
    is_state_field,
)

DEFAULT_DEBOUNCE_SECONDS = 0.15


def _differs(left: Optional[Value], right: Optional[Value]) -> bool:
    return type(left) is not type(right) or left != right


def _unique(options: list[FieldOption]) -> tuple[FieldOption, ...]:
    seen: set[str] = set()
    result = []
    for option in options:
        if option.value in seen:
            continue
        seen.add(option.value)
        result.append(option)
    return tuple(result)


def options_for(
    schema: FormSchema, field: FieldDefinition, values: Mapping[str, Value]
) -> tuple[FieldOption, ...]:
    """
    Options currently offered by a select field.

    Country selects list every country; state selects list the
    subdivisions of the selected country; other selects use their declared
    options, filtered by ``parent_value`` when the field depends on a
    parent. A dependent select offers nothing until its parent has a value.
    """
    if field.type != FieldType.SELECT:
        return ()

    if field.options_source == OptionsSource.COUNTRIES:
        return country_options()

    if field.options_source == OptionsSource.STATES:
        country_field = schema.first(is_country_field)
        code = resolve_country_code(values.get(country_field.id)) if country_field else None
        return state_options(code) if code else ()

    options = list(field.options)
    if field.options_source == OptionsSource.CITIES and field.depends_on is None:
        state_field = schema.first(is_state_field)
        selected_state = values.get(state_field.id) if state_field else None
        if not is_empty(selected_state):
            options = [o for o in options if not o.parent_value or o.parent_value == selected_state]
        return _unique(options)

    if field.depends_on is None:
        return _unique(options)

    parent_value = values.get(field.depends_on)
    if is_empty(parent_value):
        return ()
    return _unique(
        [o for o in options if not o.parent_value or o.parent_value == str(parent_value)]
    )


def _derive(
    schema: FormSchema, field: FieldDefinition, values: Mapping[str, Value], current: Value
) -> Value:
    parent = schema.get(field.depends_on) if field.depends_on else None
    if parent is None:
        return current

    parent_value = values.get(parent.id)
    # a parent hidden by its rules only holds its placeholder default
    if is_empty(parent_value) or (not parent.hidden and not is_visible(parent, values)):
        return field.default_value if field.default_value is not None else field.empty_value

    kind = calculation_for(schema, field)
    derived: Optional[str] = None
    if kind == Calculation.DIAL_CODE:
        derived = dial_code(parent_value) or None
    elif kind == Calculation.STATE_FROM_CITY:
        derived = state_for_city(parent_value, parent.options)
    elif kind == Calculation.PARENT_OPTION:
        for option in parent.options:
            if option.value == parent_value:
                derived = option.parent_value
                break

    # an underivable value (unknown country, option without parent) keeps the stored one
    return derived if derived is not None else current


def _cascade(
    schema: FormSchema, field: FieldDefinition, values: Mapping[str, Value], current: Value
) -> Value:
    if field.type != FieldType.SELECT or is_empty(current):
        return current
    if not field.options and field.options_source == OptionsSource.MANUAL:
        return current
    allowed = options_for(schema, field, values)
    if any(o.value == current for o in allowed):
        return current
    return field.empty_value


def _target_value(schema: FormSchema, field: FieldDefinition, values: Mapping[str, Value]) -> Value:
    current = values.get(field.id, field.empty_value)
    if field.auto_calculated:
        return _derive(schema, field, values, current)

    target = current
    if field.depends_on is not None:
        target = _cascade(schema, field, values, current)
    if field.default_value is None:
        return target
    if not is_visible(field, values):
        return field.default_value
    # a placeholder default ("No aplica") is dropped once the select is shown
    if (
        field.type == FieldType.SELECT
        and field.options
        and not _differs(target, field.default_value)
        and not any(o.value == target for o in field.options)
    ):
        return field.empty_value
    return target


def recompute(schema: FormSchema, values: Mapping[str, Value]) -> ValueSet:
    """
    Compute the value changes implied by the current values.

    Chained dependencies are resolved by iterating until no field changes;
    the number of passes is bounded by the schema size, so a schema whose
    rules keep flipping each other is reported as a configuration error.

    Returns:
        Mapping of field id to new value, only for fields that change

    Raises:
        ConfigurationError: the rules do not converge
    """
    working: ValueSet = dict(values)
    for _ in range(len(schema.fields) + 1):
        changes: ValueSet = {}
        for field in schema.ordered_fields:
            current = working.get(field.id, field.empty_value)
            target = _target_value(schema, field, working)
            if _differs(target, current):
                changes[field.id] = target
        if not changes:
            break
        working.update(changes)
    else:
        raise ConfigurationError("Dependent field values do not converge")

    return {
        field_id: value
        for field_id, value in working.items()
        if _differs(value, values.get(field_id, _empty_for(schema, field_id)))
    }


def _empty_for(schema: FormSchema, field_id: str) -> Optional[Value]:
    field = schema.get(field_id)
    return field.empty_value if field is not None else None


class RecomputeQueue:
    """
    Pending-recompute marker with cancel-on-new-input.

    Every edit pushes a new request; a pending request whose quiet window
    has not elapsed is replaced, so a burst of keystrokes converges once
    per pause. The queue holds no timer: callers ask ``due()`` on their own
    schedule, ``wait()`` sleeps until due, or ``take(force=True)`` drains
    it immediately (e.g. before submit).
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._deadline: Optional[float] = None
        self.requests = 0

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def push(self) -> None:
        """Record new input; supersedes any pending request."""
        self.requests += 1
        self._deadline = self._clock() + self.window_seconds

    def cancel(self) -> None:
        self._deadline = None

    def due(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def take(self, force: bool = False) -> bool:
        """Consume the pending request if it is due (or ``force``)."""
        if self._deadline is None:
            return False
        if not force and not self.due():
            return False
        self._deadline = None
        return True

    async def wait(self) -> bool:
        """Sleep until the pending request is due; False if nothing is pending."""
        while self._deadline is not None:
            remaining = self._deadline - self._clock()
            if remaining <= 0:
                return True
            await asyncio.sleep(remaining)
        return False
