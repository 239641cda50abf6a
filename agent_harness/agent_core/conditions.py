"""Condition evaluation for trigger contexts.

A definition carries a list of condition groups. The list is a disjunction:
the definition matches a context when at least one group matches. Inside a
group conditions are combined with the group operator, AND by default.

Rules:

- ``None`` or an empty list matches every context.
- A group without conditions is invalid. ``normalize_condition_groups`` drops
  such groups when a definition is stored, and ``matches`` skips them rather
  than treating them as vacuously true.
- A property missing from the context makes its condition false, whatever the
  operator (``not_equals`` and ``not_in`` included).
- ``equals`` / ``not_equals`` are exact and case-sensitive.

The evaluator is pure and allocation-light; it is safe to call from many
concurrent trigger checks.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, TypeVar

from .schemas.definition import (
    AgentDefinition,
    Condition,
    ConditionGroup,
    ConditionOperator,
    GroupOperator,
)

T = TypeVar("T", bound=AgentDefinition)

_MISSING = object()


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _value_set(value: Any) -> List[str]:
    if isinstance(value, (list, tuple, set)):
        return [_text(v) for v in value]
    return [_text(value)]


def evaluate_condition(condition: Condition, context: Mapping[str, Any]) -> bool:
    actual = context.get(condition.property, _MISSING)
    if actual is _MISSING or actual is None:
        return False

    expected = condition.value
    is_list = isinstance(actual, (list, tuple, set))

    match condition.operator:
        case ConditionOperator.equals:
            return not is_list and _text(actual) == _text(expected)
        case ConditionOperator.not_equals:
            return is_list or _text(actual) != _text(expected)
        case ConditionOperator.contains:
            if is_list:
                return _text(expected) in _value_set(actual)
            return _text(expected) in _text(actual)
        case ConditionOperator.in_:
            allowed = _value_set(expected)
            if is_list:
                return any(item in allowed for item in _value_set(actual))
            return _text(actual) in allowed
        case ConditionOperator.not_in:
            denied = _value_set(expected)
            if is_list:
                return all(item not in denied for item in _value_set(actual))
            return _text(actual) not in denied
    return False


def evaluate_group(group: ConditionGroup, context: Mapping[str, Any]) -> bool:
    if not group.conditions:
        return False
    if group.operator == GroupOperator.or_:
        return any(evaluate_condition(c, context) for c in group.conditions)
    return all(evaluate_condition(c, context) for c in group.conditions)


def matches(conditions: Optional[Sequence[ConditionGroup]], context: Mapping[str, Any]) -> bool:
    """Return whether ``context`` satisfies ``conditions``.

    Empty groups are skipped. If every group is empty the list is treated like
    an empty list and matches.
    """
    if not conditions:
        return True
    groups = [g for g in conditions if g.conditions]
    if not groups:
        return True
    return any(evaluate_group(g, context) for g in groups)


def normalize_condition_groups(groups: Optional[Iterable[ConditionGroup]]) -> Optional[List[ConditionGroup]]:
    if groups is None:
        return None
    return [g for g in groups if g.conditions]


def select_matching(definitions: Iterable[T], context: Mapping[str, Any]) -> List[T]:
    return [d for d in definitions if matches(d.conditions, context)]
