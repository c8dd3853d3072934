"""Developer-notification conditions.

A form may restrict owner alerts to submissions whose data matches every
configured condition, e.g. ``{"field": "rating", "operator": "lessThan",
"value": "3"}``.
"""

from enum import StrEnum
from typing import Any


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def condition_matches(condition: dict[str, Any], data: dict[str, Any]) -> bool:
    """Evaluate one condition against submitted data.

    Missing fields never match. Numeric comparisons require both sides to
    parse as numbers; text comparisons are case-insensitive.
    """
    field = condition.get("field")
    if not field or field not in data:
        return False

    try:
        operator = ConditionOperator(condition.get("operator"))
    except ValueError:
        return False

    actual = data[field]
    expected = condition.get("value")

    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == ConditionOperator.GREATER_THAN else left < right

    actual_text = str(actual).strip().lower()
    expected_text = str(expected if expected is not None else "").strip().lower()
    if operator == ConditionOperator.EQUALS:
        return actual_text == expected_text
    return expected_text in actual_text


def conditions_match(conditions: list[dict[str, Any]] | None, data: dict[str, Any]) -> bool:
    """True when there are no conditions or every condition matches."""
    if not conditions:
        return True
    return all(condition_matches(c, data) for c in conditions)
