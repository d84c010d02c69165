"""Dataset-level transformation pipeline.

Steps run in order, each one reading the previous step's output. A step that
receives data of the wrong shape returns it unchanged; a step that raises is
logged and skipped, so one faulty step never aborts the pipeline. Steps never
mutate their input.
"""
from __future__ import annotations

import json
import math
from copy import deepcopy
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from .accessors import delete_value_by_path, get_value_by_path, set_value_by_path
from .conditions import evaluate_condition, to_number
from .config import Transformation
from .exceptions import UnknownStepError
from .logging_config import LogContext, get_logger
from .value_transforms import capitalize, round_half_up

if TYPE_CHECKING:
    from .ai_throttler import AIThrottler

logger = get_logger("pipeline")

DEFAULT_LIMIT = 10


class StepKind(str, Enum):
    FILTER = "filter"
    SORT = "sort"
    LIMIT = "limit"
    UNIQUE = "unique"
    MAP = "map"
    ADD_FIELD = "add-field"
    REMOVE_FIELD = "remove-field"
    RENAME_FIELD = "rename-field"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    CAPITALIZE = "capitalize"
    TRIM = "trim"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    AI_TRANSFORM = "ai-transform"

    @classmethod
    def parse(cls, name: Any) -> Optional["StepKind"]:
        try:
            return cls(name)
        except ValueError:
            return None


# -----------------------------------------------------------------------------
# Array operations
# -----------------------------------------------------------------------------


def _sort_key(value: Any):
    # None first, then numbers, then strings; everything else by its JSON text.
    if value is None:
        return (0, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value, "")
    if isinstance(value, str):
        return (2, 0, value)
    return (3, 0, json.dumps(value, sort_keys=True, default=str))


def _identity_key(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    if _is_number(value):
        return ("number", float(value))
    return (type(value).__name__, value)


def filter_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    field = cfg.get("field")
    return [
        item for item in data
        if evaluate_condition(get_value_by_path(item, field), cfg.get("operator"), cfg.get("value"))
    ]


def sort_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    field = cfg.get("field")
    return sorted(
        data,
        key=lambda item: _sort_key(get_value_by_path(item, field)),
        reverse=cfg.get("order") == "desc",
    )


def limit_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    count = cfg.get("count", cfg.get("limit"))
    count = DEFAULT_LIMIT if count is None else int(count)
    return data[:max(0, count)]


def unique_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    field = cfg.get("field")
    seen = set()
    out = []
    for item in data:
        value = get_value_by_path(item, field) if field else item
        key = _identity_key(value)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def map_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    table = cfg.get("fields") or cfg.get("mappings") or {}
    out = []
    for item in data:
        mapped: Dict[str, Any] = {}
        for new_field, source_path in table.items():
            set_value_by_path(mapped, new_field, deepcopy(get_value_by_path(item, source_path)))
        out.append(mapped)
    return out


# -----------------------------------------------------------------------------
# Structural edits
# -----------------------------------------------------------------------------


def _per_object(data: Any, edit: Callable[[Dict[str, Any]], None]) -> Any:
    """Apply an in-place edit to a copy of the object, or of each object in a list."""
    def one(obj: Any) -> Any:
        if not isinstance(obj, dict):
            return obj
        copy = deepcopy(obj)
        edit(copy)
        return copy

    if isinstance(data, list):
        return [one(item) for item in data]
    return one(data)


def add_field(data: Any, cfg: Dict[str, Any]) -> Any:
    field = cfg.get("field")
    if not field:
        return data
    value = cfg.get("value")
    return _per_object(data, lambda obj: set_value_by_path(obj, field, deepcopy(value)))


def remove_field(data: Any, cfg: Dict[str, Any]) -> Any:
    field = cfg.get("field")
    if not field:
        return data
    return _per_object(data, lambda obj: delete_value_by_path(obj, field))


def rename_field(data: Any, cfg: Dict[str, Any]) -> Any:
    source, target = cfg.get("from"), cfg.get("to")
    if not source or not target:
        return data

    def rename(obj: Dict[str, Any]) -> None:
        value = get_value_by_path(obj, source)
        if delete_value_by_path(obj, source):
            set_value_by_path(obj, target, value)

    return _per_object(data, rename)


# -----------------------------------------------------------------------------
# Value operations: whole value when scalar, else config.field inside each item
# -----------------------------------------------------------------------------


def _apply_to_values(data: Any, field: Optional[str], accepts: Callable[[Any], bool],
                     fn: Callable[[Any], Any]) -> Any:
    def one(item: Any) -> Any:
        if accepts(item):
            return fn(item)
        if field and isinstance(item, dict):
            current = get_value_by_path(item, field)
            if accepts(current):
                copy = deepcopy(item)
                set_value_by_path(copy, field, fn(current))
                return copy
        return item

    if isinstance(data, list):
        return [one(item) for item in data]
    return one(data)


_STRING_OPS: Dict[StepKind, Callable[[str], str]] = {
    StepKind.UPPERCASE: str.upper,
    StepKind.LOWERCASE: str.lower,
    StepKind.CAPITALIZE: capitalize,
    StepKind.TRIM: str.strip,
}


def string_op(kind: StepKind, data: Any, cfg: Dict[str, Any]) -> Any:
    return _apply_to_values(data, cfg.get("field"), lambda v: isinstance(v, str), _STRING_OPS[kind])


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_numeric(value: Any) -> bool:
    # Numbers and numeric strings such as "3.7"; booleans excluded.
    if isinstance(value, bool):
        return False
    number = to_number(value)
    return number is not None and math.isfinite(number)


def numeric_op(kind: StepKind, data: Any, cfg: Dict[str, Any]) -> Any:
    precision = int(cfg.get("precision") or 0)

    def rounding(value: Any) -> Any:
        if isinstance(value, str):
            value = to_number(value)
        if kind is StepKind.ROUND:
            return round_half_up(value, precision)
        if kind is StepKind.FLOOR:
            return math.floor(value)
        return math.ceil(value)

    return _apply_to_values(data, cfg.get("field"), _is_numeric, rounding)


# -----------------------------------------------------------------------------
# Aggregations
# -----------------------------------------------------------------------------


def _field_total(data: List[Any], field: str) -> float:
    total = 0.0
    for item in data:
        number = to_number(get_value_by_path(item, field))
        total += number if number is not None and not math.isnan(number) else 0
    return total


def _plain(number: float) -> Any:
    return int(number) if float(number).is_integer() else number


def count_items(data: Any, cfg: Dict[str, Any]) -> Any:
    return {"count": len(data) if isinstance(data, list) else 1}


def sum_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    field = cfg.get("field")
    if not field:
        logger.warning("Sum step requires a field", extra={"event": "pipeline.missing_field", "step_type": "sum"})
        return data
    return {"sum": _plain(_field_total(data, field))}


def average_items(data: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(data, list):
        return data
    field = cfg.get("field")
    if not field:
        logger.warning("Average step requires a field", extra={"event": "pipeline.missing_field", "step_type": "average"})
        return data
    return {"average": _plain(_field_total(data, field) / len(data)) if data else 0}


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------

_SIMPLE_STEPS: Dict[StepKind, Callable[[Any, Dict[str, Any]], Any]] = {
    StepKind.FILTER: filter_items,
    StepKind.SORT: sort_items,
    StepKind.LIMIT: limit_items,
    StepKind.UNIQUE: unique_items,
    StepKind.MAP: map_items,
    StepKind.ADD_FIELD: add_field,
    StepKind.REMOVE_FIELD: remove_field,
    StepKind.RENAME_FIELD: rename_field,
    StepKind.COUNT: count_items,
    StepKind.SUM: sum_items,
    StepKind.AVERAGE: average_items,
}


def apply_step(data: Any, step: Transformation, ai_throttler: Optional["AIThrottler"] = None) -> Any:
    """Apply one pipeline step. Raises UnknownStepError for unrecognised types."""
    kind = StepKind.parse(step.type)
    if kind is None:
        raise UnknownStepError(f"Unknown transformation type: {step.type}", step.type)

    if kind in _SIMPLE_STEPS:
        return _SIMPLE_STEPS[kind](data, step.config)
    if kind in _STRING_OPS:
        return string_op(kind, data, step.config)
    if kind in (StepKind.ROUND, StepKind.FLOOR, StepKind.CEIL):
        return numeric_op(kind, data, step.config)
    if kind is StepKind.AI_TRANSFORM:
        if ai_throttler is None:
            logger.warning(
                "No external transform configured; ai-transform step skipped",
                extra={"event": "pipeline.ai_unavailable"},
            )
            return data
        return ai_throttler.apply(data, step)
    raise AssertionError(f"unhandled step kind {kind}")


def _shape(data: Any) -> str:
    if isinstance(data, list):
        return f"array({len(data)})"
    return type(data).__name__


def apply_pipeline(
    data: Any,
    steps: Iterable[Transformation],
    *,
    ai_throttler: Optional["AIThrottler"] = None,
) -> Any:
    result = data
    for index, step in enumerate(steps):
        with LogContext.bind(step=f"{index}:{step.type}"):
            try:
                result = apply_step(result, step, ai_throttler)
            except Exception:
                logger.warning(
                    "Transformation %s failed; continuing with the previous result",
                    step.type,
                    exc_info=True,
                    extra={"event": "pipeline.step_failed", "step_index": index, "step_type": step.type},
                )
                continue
            logger.debug(
                "Applied transformation %s",
                step.type,
                extra={"event": "pipeline.step_applied", "step_index": index, "result_shape": _shape(result)},
            )
    return result
