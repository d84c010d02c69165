from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional

from .conditions import as_text, is_empty, json_equal, to_number
from .config import Transformation
from .logging_config import get_logger

logger = get_logger("value_transforms")


# -----------------------------------------------------------------------------
# Shared helpers (also used by the pipeline)
# -----------------------------------------------------------------------------


def capitalize(text: str) -> str:
    return text[:1].upper() + text[1:].lower()


def round_half_up(number: float, precision: int = 0) -> float:
    """Round half away from zero, matching the rounding users expect in output."""
    quantum = Decimal(1).scaleb(-int(precision))
    rounded = Decimal(str(number)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if precision <= 0 else float(rounded)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601, RFC 2822 (feed dates) or epoch values; None when unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        # Values this large are epoch milliseconds.
        seconds = value / 1000.0 if abs(value) > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. '2024-05-01T12:00:00.000Z'."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _numbers(value: Any) -> List[float]:
    if not isinstance(value, list):
        return []
    return [n for n in (to_number(v) for v in value) if n is not None]


def _plain(number: Optional[float]) -> Any:
    """Render integral floats as ints so '3' stays 3 rather than 3.0."""
    if number is None or math.isnan(number) or math.isinf(number):
        return None
    if float(number).is_integer():
        return int(number)
    return number


# -----------------------------------------------------------------------------
# Transform table
# -----------------------------------------------------------------------------

TransformFn = Callable[[Any, Dict[str, Any]], Any]


def _substring(value: Any, cfg: Dict[str, Any]) -> Any:
    text = as_text(value)
    start = int(cfg.get("start") or 0)
    end = cfg.get("end")
    return text[start:] if end is None else text[start:int(end)]


def _replace(value: Any, cfg: Dict[str, Any]) -> Any:
    text = as_text(value)
    find = as_text(cfg.get("find"))
    repl = as_text(cfg.get("replace"))
    if not find:
        return text
    return text.replace(find, repl) if cfg.get("replaceAll") else text.replace(find, repl, 1)


def _regex_extract(value: Any, cfg: Dict[str, Any]) -> Any:
    pattern = cfg.get("pattern")
    if not pattern:
        return value
    match = re.search(pattern, as_text(value))
    return match.group(int(cfg.get("group") or 0)) if match else None


def _string_format(value: Any, cfg: Dict[str, Any]) -> Any:
    template = cfg.get("template")
    if not template:
        return value
    return str(template).replace("{value}", as_text(value))


def _round(value: Any, cfg: Dict[str, Any]) -> Any:
    number = to_number(value)
    if number is None:
        return None
    return round_half_up(number, int(cfg.get("precision") or 0))


def _math_operation(value: Any, cfg: Dict[str, Any]) -> Any:
    operation = cfg.get("operation")
    try:
        left = Decimal(str(to_number(value)))
        right = Decimal(str(to_number(cfg.get("operand"))))
    except InvalidOperation:
        return None
    if operation == "add":
        result = left + right
    elif operation == "subtract":
        result = left - right
    elif operation == "multiply":
        result = left * right
    elif operation == "divide":
        if right == 0:
            return None
        result = left / right
    else:
        return value
    return _plain(float(result))


def _format_number(value: Any, cfg: Dict[str, Any]) -> Any:
    number = to_number(value)
    if number is None:
        return None
    decimals = cfg.get("decimals")
    if decimals is None:
        return f"{number:,}" if not number.is_integer() else f"{int(number):,}"
    return f"{number:,.{int(decimals)}f}"


def _to_currency(value: Any, cfg: Dict[str, Any]) -> Any:
    number = to_number(value)
    if number is None:
        return None
    symbol = cfg.get("symbol", "$")
    decimals = int(cfg.get("decimals", 2))
    sign = "-" if number < 0 else ""
    return f"{sign}{symbol}{abs(number):,.{decimals}f}"


def _parse_number(value: Any, cfg: Dict[str, Any]) -> Any:
    return _plain(to_number(value))


def _to_string(value: Any, cfg: Dict[str, Any]) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return as_text(value)


def _join(value: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(value, list):
        return value
    delimiter = cfg.get("delimiter", ",")
    return delimiter.join(as_text(v) for v in value)


def _split(value: Any, cfg: Dict[str, Any]) -> Any:
    return as_text(value).split(cfg.get("delimiter", ",") or ",")


def _unique(value: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(value, list):
        return value
    seen = set()
    out = []
    for v in value:
        key = json.dumps(v, sort_keys=True, default=str)
        if key not in seen:
            seen.add(key)
            out.append(v)
    return out


def _average(value: Any, cfg: Dict[str, Any]) -> Any:
    if not isinstance(value, list):
        return value
    numbers = _numbers(value)
    return _plain(sum(numbers) / len(numbers)) if numbers else 0


def _date_part(part: str) -> TransformFn:
    def extract(value: Any, cfg: Dict[str, Any]) -> Any:
        dt = parse_datetime(value)
        return getattr(dt, part) if dt else None
    return extract


def _parse_date(value: Any, cfg: Dict[str, Any]) -> Any:
    dt = parse_datetime(value)
    return dt.isoformat() if dt else None


def _date_format(value: Any, cfg: Dict[str, Any]) -> Any:
    dt = parse_datetime(value)
    if dt is None:
        return None
    return dt.strftime(cfg.get("format") or "%Y-%m-%d")


def _timestamp(value: Any, cfg: Dict[str, Any]) -> Any:
    dt = parse_datetime(value)
    return int(dt.timestamp() * 1000) if dt else None


def _compare(predicate: Callable[[float, float], bool]) -> TransformFn:
    def compare(value: Any, cfg: Dict[str, Any]) -> Any:
        left, right = to_number(value), to_number(cfg.get("value"))
        if left is None or right is None:
            return False
        return predicate(left, right)
    return compare


_TRANSFORMS: Dict[str, TransformFn] = {
    "direct": lambda v, c: v,
    # text
    "uppercase": lambda v, c: as_text(v).upper(),
    "lowercase": lambda v, c: as_text(v).lower(),
    "capitalize": lambda v, c: capitalize(as_text(v)),
    "trim": lambda v, c: as_text(v).strip(),
    "substring": _substring,
    "replace": _replace,
    "regex-extract": _regex_extract,
    "string-format": _string_format,
    "length": lambda v, c: len(v) if isinstance(v, (str, list, dict)) else len(as_text(v)),
    "is-empty": lambda v, c: is_empty(v),
    "contains": lambda v, c: as_text(c.get("value")) in as_text(v),
    "parse-number": _parse_number,
    "to-string": _to_string,
    "format-number": _format_number,
    "to-currency": _to_currency,
    # numbers
    "round": _round,
    "floor": lambda v, c: None if to_number(v) is None else math.floor(to_number(v)),
    "ceil": lambda v, c: None if to_number(v) is None else math.ceil(to_number(v)),
    "abs": lambda v, c: None if to_number(v) is None else _plain(abs(to_number(v))),
    "math-operation": _math_operation,
    "greater-than": _compare(lambda a, b: a > b),
    "less-than": _compare(lambda a, b: a < b),
    "equals": lambda v, c: json_equal(v, c.get("value")),
    # arrays
    "join": _join,
    "split": _split,
    "first": lambda v, c: (v[0] if v else None) if isinstance(v, list) else v,
    "last": lambda v, c: (v[-1] if v else None) if isinstance(v, list) else v,
    "count": lambda v, c: len(v) if isinstance(v, list) else 1,
    "sum": lambda v, c: _plain(sum(_numbers(v))) if isinstance(v, list) else v,
    "average": _average,
    "min": lambda v, c: _plain(min(_numbers(v))) if _numbers(v) else None,
    "max": lambda v, c: _plain(max(_numbers(v))) if _numbers(v) else None,
    "unique": _unique,
    # dates
    "parse-date": _parse_date,
    "date-format": _date_format,
    "timestamp": _timestamp,
    "year": _date_part("year"),
    "month": _date_part("month"),
    "day": _date_part("day"),
}

VALUE_TRANSFORM_TYPES = frozenset(_TRANSFORMS)


def apply_value_transform(value: Any, transformation: Transformation) -> Any:
    """Apply a single-value transform to one resolved field value.

    None passes through untouched so the mapping's fallback still applies.
    """
    if value is None:
        return None
    fn = _TRANSFORMS.get(transformation.type)
    if fn is None:
        logger.warning(
            "Unknown value transform %r; value left unchanged",
            transformation.type,
            extra={"event": "transform.unknown_type", "transform_type": transformation.type},
        )
        return value
    return fn(value, transformation.config)
