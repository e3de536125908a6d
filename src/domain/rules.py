"""
Rule evaluator - Conditional visibility of form fields.

Pure functions: the result depends only on the field definition and the
current value set, so the same input always yields the same output.

Visibility rules
================

1. A hard-``hidden`` field is never visible.
2. A field without conditional rules is visible.
3. If any ``show`` rule exists, the field is visible only when at least one
   ``show`` rule is satisfied.
4. If any ``hide`` rule is satisfied, the field is hidden (hide wins).

Empty values (missing, ``None``, ``""``) never satisfy ``notEquals``,
``contains``, ``greaterThan`` or ``lessThan``: a field that has not been
filled cannot be "different from X" or "greater than N". ``equals``
treats a missing value as ``""``.
"""

from collections.abc import Iterable, Mapping
from typing import Optional

from .schema import (
    Condition,
    ConditionalRule,
    FieldDefinition,
    Operator,
    RuleAction,
    RuleLogic,
    Value,
)


def is_empty(value: Optional[Value]) -> bool:
    return value is None or value == ""


def _same(left: Optional[Value], right: Value) -> bool:
    if left is None:
        left = ""
    # True == 1 in Python; a checkbox must not match a numeric target
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def _as_number(value: Value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: Condition, values: Mapping[str, Value]) -> bool:
    """Evaluate one condition against the current values."""
    actual = values.get(condition.field)
    op = condition.operator

    if op == Operator.EQUALS:
        return _same(actual, condition.value)

    if op == Operator.NOT_CONTAINS:
        if is_empty(actual) or not isinstance(actual, str):
            return True
        return str(condition.value) not in actual

    if is_empty(actual):
        return False

    if op == Operator.NOT_EQUALS:
        return not _same(actual, condition.value)
    if op == Operator.CONTAINS:
        return isinstance(actual, str) and str(condition.value) in actual
    if op in (Operator.GREATER_THAN, Operator.LESS_THAN):
        left = _as_number(actual)
        right = _as_number(condition.value)
        if left is None or right is None:
            return False
        return left > right if op == Operator.GREATER_THAN else left < right

    raise ValueError(f"Unknown operator: {op!r}")


def evaluate_rule(rule: ConditionalRule, values: Mapping[str, Value]) -> bool:
    """Combine a rule's conditions with its and/or logic."""
    if not rule.conditions:
        return True
    results = (evaluate_condition(c, values) for c in rule.conditions)
    if rule.logic == RuleLogic.AND:
        return all(results)
    return any(results)


def is_visible(field: FieldDefinition, values: Mapping[str, Value]) -> bool:
    """Whether ``field`` is shown for the given values."""
    if field.hidden:
        return False
    if not field.conditional_logic:
        return True

    show_rules = [r for r in field.conditional_logic if r.action == RuleAction.SHOW]
    hide_rules = [r for r in field.conditional_logic if r.action == RuleAction.HIDE]

    visible = True
    if show_rules:
        visible = any(evaluate_rule(r, values) for r in show_rules)
    if any(evaluate_rule(r, values) for r in hide_rules):
        visible = False
    return visible


def is_effectively_visible(
    field: FieldDefinition,
    values: Mapping[str, Value],
    fields: Iterable[FieldDefinition],
) -> bool:
    """
    Visibility including the parent chain.

    A dependent field stays hidden while its parent is hidden or empty,
    in addition to its own rules.
    """
    by_id = {f.id: f for f in fields}
    seen: set[str] = set()
    current = field
    while current.depends_on is not None and current.depends_on not in seen:
        seen.add(current.id)
        parent = by_id.get(current.depends_on)
        if parent is None:
            break
        if is_empty(values.get(parent.id)) or not is_visible(parent, values):
            return False
        current = parent
    return is_visible(field, values)
