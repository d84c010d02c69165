"""Comparison operators shared by field conditionals and pipeline filters."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from .logging_config import get_logger

logger = get_logger("conditions")


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"

    @classmethod
    def parse(cls, name: Any) -> Optional["Operator"]:
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            return None


def to_number(value: Any) -> Optional[float]:
    """Numeric cast used by comparisons and numeric transforms; None if not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def json_equal(left: Any, right: Any) -> bool:
    """Value equality as JSON sees it: booleans never equal numbers, 1 equals 1.0."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(v, right[k]) for k, v in left.items())
    return left == right


def evaluate_condition(value: Any, operator: Any, compare_value: Any = None) -> bool:
    """Evaluate ``value <operator> compare_value``.

    Unknown operators evaluate to False.
    """
    op = Operator.parse(operator)
    if op is None:
        logger.warning(
            "Unknown condition operator %r evaluated as false",
            operator,
            extra={"event": "condition.unknown_operator", "operator": operator},
        )
        return False

    if op is Operator.EQUALS:
        return json_equal(value, compare_value)
    if op is Operator.NOT_EQUALS:
        return not json_equal(value, compare_value)
    if op is Operator.CONTAINS:
        return as_text(compare_value) in as_text(value)
    if op is Operator.NOT_CONTAINS:
        return as_text(compare_value) not in as_text(value)
    if op is Operator.GREATER_THAN or op is Operator.LESS_THAN:
        left, right = to_number(value), to_number(compare_value)
        if left is None or right is None:
            return False
        return left > right if op is Operator.GREATER_THAN else left < right
    if op is Operator.STARTS_WITH:
        return as_text(value).startswith(as_text(compare_value))
    if op is Operator.ENDS_WITH:
        return as_text(value).endswith(as_text(compare_value))
    if op is Operator.IS_EMPTY:
        return is_empty(value)
    if op is Operator.IS_NOT_EMPTY:
        return not is_empty(value)
    if op is Operator.EXISTS:
        return value is not None
    if op is Operator.NOT_EXISTS:
        return value is None
    raise AssertionError(f"unhandled operator {op}")
