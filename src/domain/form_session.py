"""
Form session - The value set of one visitor filling one form.

Owns the current values, applies user edits, coalesces recomputation of
derived fields, and prepares the snapshot that is sent on submit. Rule
evaluation and validation are delegated to the pure functions in
``rules``, ``dependencies`` and ``validation``.
"""

import logging
import time
from collections.abc import Mapping
from typing import Callable, Optional

from .dependencies import DEFAULT_DEBOUNCE_SECONDS, RecomputeQueue, options_for, recompute
from .exceptions import FormValidationError
from .rules import is_effectively_visible
from .schema import FieldDefinition, FieldOption, FieldType, FormSchema, Value, ValueSet
from .validation import validate

logger = logging.getLogger(__name__)


def initial_values(schema: FormSchema, existing: Optional[Mapping[str, Value]] = None) -> ValueSet:
    """Existing data first, then the field default, then the empty value."""
    existing = existing or {}
    values: ValueSet = {}
    for field in schema.ordered_fields:
        if existing.get(field.id) is not None:
            values[field.id] = existing[field.id]
        elif field.default_value is not None:
            values[field.id] = field.default_value
        else:
            values[field.id] = field.empty_value
    return values


class FormSession:
    """Current values of a form being filled in."""

    def __init__(
        self,
        schema: FormSchema,
        existing_data: Optional[Mapping[str, Value]] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.schema = schema
        self.queue = RecomputeQueue(debounce_seconds, clock)
        self._values = initial_values(schema, existing_data)
        self._values.update(recompute(schema, self._values))

    @property
    def values(self) -> ValueSet:
        return dict(self._values)

    def set_value(self, field_id: str, value: Value) -> bool:
        """
        Apply a user edit and schedule recomputation.

        Edits to auto-calculated fields are ignored; their value is owned
        by the dependency resolver.

        Returns:
            True if the edit was applied

        Raises:
            FormValidationError: ``field_id`` is not part of the form
        """
        field = self.schema.get(field_id)
        if field is None:
            raise FormValidationError({field_id: "Unknown field"})
        if field.auto_calculated:
            logger.warning("Ignoring edit to auto-calculated field %s", field_id)
            return False
        self._values[field_id] = value
        self.queue.push()
        return True

    def set_values(self, values: Mapping[str, Value]) -> list[str]:
        """Apply several edits; returns the ids that were applied."""
        unknown = {k: "Unknown field" for k in values if self.schema.get(k) is None}
        if unknown:
            raise FormValidationError(unknown)
        return [k for k, v in values.items() if self.set_value(k, v)]

    def tick(self) -> ValueSet:
        """Run the pending recompute if its quiet window has elapsed."""
        if not self.queue.take():
            return {}
        return self._apply_recompute()

    def flush(self) -> ValueSet:
        """Run any pending recompute now."""
        self.queue.take(force=True)
        return self._apply_recompute()

    async def settle(self) -> ValueSet:
        """Wait for the quiet window, then recompute."""
        await self.queue.wait()
        return self.tick()

    def _apply_recompute(self) -> ValueSet:
        update = recompute(self.schema, self._values)
        if update:
            logger.debug("Recomputed %d field(s): %s", len(update), sorted(update))
            self._values.update(update)
        return update

    def is_visible(self, field: FieldDefinition) -> bool:
        return is_effectively_visible(field, self._values, self.schema.fields)

    def visible_fields(self) -> list[FieldDefinition]:
        return [f for f in self.schema.ordered_fields if self.is_visible(f)]

    def options(self, field_id: str) -> tuple[FieldOption, ...]:
        field = self.schema.get(field_id)
        if field is None:
            return ()
        return options_for(self.schema, field, self._values)

    def validate(self) -> dict[str, str]:
        self.flush()
        return validate(self.schema, self._values)

    def submission(self) -> ValueSet:
        """
        Snapshot to send to the backend.

        Fields hidden by rules or by an empty parent are blanked so stale
        answers are not stored; hard-hidden, auto-calculated and defaulted
        fields keep their value. The session values are not modified.

        Raises:
            FormValidationError: visible fields are invalid
        """
        errors = self.validate()
        if errors:
            raise FormValidationError(errors)

        snapshot = dict(self._values)
        for field in self.schema.ordered_fields:
            if field.hidden or field.auto_calculated or field.default_value is not None:
                continue
            if not is_effectively_visible(field, self._values, self.schema.fields):
                snapshot[field.id] = field.empty_value
        return snapshot

    def email(self) -> Optional[str]:
        """Value of the first email field, if filled."""
        field = self.schema.first(lambda f: f.type == FieldType.EMAIL)
        value = self._values.get(field.id) if field else None
        return value.strip() if isinstance(value, str) and value.strip() else None

    def name(self) -> Optional[str]:
        """Best-effort display name: name/nombre fields joined, else the first text field."""
        parts = [
            str(self._values[f.id]).strip()
            for f in self.schema.ordered_fields
            if any(n in f.id.lower() for n in ("name", "nombre")) and self._values.get(f.id)
        ]
        if parts:
            return " ".join(parts)
        field = self.schema.first(lambda f: f.type == FieldType.TEXT and not f.auto_calculated)
        value = self._values.get(field.id) if field else None
        return str(value).strip() if value else None
