"""Field coercions used by static and learned parsers.

Every function here is pure (value in, value out) except that the date
coercions fall back to the current UTC time. Coercions that can fail on bad
input return the type's neutral value instead of raising; the parser engine
still guards each call in case a custom transformation raises.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from typing import Any

from dokkan_datahub.core.models import FieldType

Transform = Callable[[Any], Any]

# Leading numeric prefix, the way lenient web data is usually read
_INT_PREFIX = re.compile(r"^\s*([-+]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")

_FALSE_STRINGS = frozenset({"", "false", "0", "no", "off", "none", "null"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_number(value: Any) -> int | float:
    """Coerce to a number; 0 when no numeric prefix can be read."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    match = _FLOAT_PREFIX.match(str(value)) if value is not None else None
    if match is None:
        return 0
    text = match.group(1)
    try:
        number = float(text)
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    if number.is_integer() and re.fullmatch(r"[-+]?\d+", text):
        return int(number)
    return number


def to_int(value: Any) -> int:
    """Coerce to an integer; 0 when no integer prefix can be read."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _INT_PREFIX.match(str(value)) if value is not None else None
    return int(match.group(1)) if match else 0


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def parse_datetime(value: Any) -> datetime | None:
    """Best-effort conversion to an aware datetime, or None.

    Accepts datetime/date instances, extended ISO-8601 strings (trailing "Z"
    allowed) and epoch milliseconds. Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        # bare digit runs are ids or counters, never compact ISO dates
        if not text or not text[0].isdigit() or text.isdigit():
            return None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def is_date_string(value: str) -> bool:
    return parse_datetime(value) is not None


def to_datetime(value: Any) -> datetime:
    """Coerce to a datetime; now (UTC) when the value cannot be parsed."""
    parsed = parse_datetime(value)
    return parsed if parsed is not None else utcnow()


def to_array(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return []


def to_object(value: Any) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def to_text(value: Any) -> str:
    return "" if value is None else str(value)


def strip_text(value: Any) -> str:
    return str(value).strip()


def to_id(value: Any) -> str:
    return str(value)


def infer_field_type(value: Any) -> FieldType:
    """Classify a sample value: number, boolean, date, array, object, string."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, (datetime, date)):
        return FieldType.DATE
    if isinstance(value, str) and is_date_string(value):
        return FieldType.DATE
    if isinstance(value, (list, tuple)):
        return FieldType.ARRAY
    if isinstance(value, Mapping):
        return FieldType.OBJECT
    return FieldType.STRING


COERCIONS: dict[FieldType, Transform] = {
    FieldType.NUMBER: to_number,
    FieldType.BOOLEAN: to_bool,
    FieldType.DATE: to_datetime,
    FieldType.ARRAY: to_array,
    FieldType.OBJECT: to_object,
    FieldType.STRING: to_text,
}

TYPE_DEFAULTS: dict[FieldType, Callable[[], Any]] = {
    FieldType.NUMBER: lambda: 0,
    FieldType.BOOLEAN: lambda: False,
    FieldType.DATE: utcnow,
    FieldType.ARRAY: list,
    FieldType.OBJECT: dict,
    FieldType.STRING: str,
}
