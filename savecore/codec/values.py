"""
Per-kind value formatting for array blocks.

Every supported kind has a formatter (value -> str), a parser
(str -> value, raises ValueError on bad input) and a zero default.
Composite kinds (vector, color, timestamp) write each field followed by
COMPOSITE_DELIMITER, so "1.0#2.0#" is a two-field composite.

Timestamps are stored naive. Timezone-aware values are converted to UTC
before encoding and decode as naive UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable


COMPOSITE_DELIMITER = "#"


class BlockKind(Enum):
    """Value kinds an array block can carry."""
    BOOL = "bool"
    INT = "int"
    DOUBLE = "double"
    STRING = "string"
    TIME_SPAN = "time_span"
    VECTOR2 = "vector2"
    COLOR = "color"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class Vector2:
    """2D vector."""
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Color:
    """RGBA color, channels in 0..1."""
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 0.0


@dataclass(frozen=True)
class ValueFormat:
    """Formatter/parser pair for one kind."""
    kind: BlockKind
    format: Callable[[Any], str]
    parse: Callable[[str], Any]
    default: Any


def join_fields(fields: list[str]) -> str:
    """Join composite fields, each followed by the delimiter."""
    return ''.join(f + COMPOSITE_DELIMITER for f in fields)


def split_fields(text: str, count: int) -> list[str]:
    """
    Split a composite string produced by join_fields().

    Raises:
        ValueError: If the text does not hold exactly `count` fields
    """
    parts = text.split(COMPOSITE_DELIMITER)
    if len(parts) != count + 1 or parts[-1] != "":
        raise ValueError(f"Expected {count} fields, got {text!r}")
    return parts[:-1]


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _parse_bool(text: str) -> bool:
    if text == "true":
        return True
    if text == "false":
        return False
    raise ValueError(f"Not a bool: {text!r}")


def _format_double(value: float) -> str:
    return repr(float(value))


def _parse_int(text: str) -> int:
    return int(text, 10)


def _format_time_span(value: timedelta) -> str:
    # Whole microseconds keep the round trip exact
    return str(value // timedelta(microseconds=1))


def _parse_time_span(text: str) -> timedelta:
    return timedelta(microseconds=int(text, 10))


def _format_vector2(value: Vector2) -> str:
    return join_fields([_format_double(value.x), _format_double(value.y)])


def _parse_vector2(text: str) -> Vector2:
    x, y = (float(f) for f in split_fields(text, 2))
    return Vector2(x, y)


def _format_color(value: Color) -> str:
    return join_fields([_format_double(c) for c in (value.r, value.g, value.b, value.a)])


def _parse_color(text: str) -> Color:
    r, g, b, a = (float(f) for f in split_fields(text, 4))
    return Color(r, g, b, a)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return join_fields([
        str(value.year),
        str(value.month),
        str(value.day),
        str(value.hour),
        str(value.minute),
        str(value.second),
        str(value.microsecond),
    ])


def _parse_timestamp(text: str) -> datetime:
    parts = [int(f, 10) for f in split_fields(text, 7)]
    return datetime(*parts)


VALUE_FORMATS: dict[BlockKind, ValueFormat] = {
    BlockKind.BOOL: ValueFormat(BlockKind.BOOL, _format_bool, _parse_bool, False),
    BlockKind.INT: ValueFormat(BlockKind.INT, lambda v: str(int(v)), _parse_int, 0),
    BlockKind.DOUBLE: ValueFormat(BlockKind.DOUBLE, _format_double, float, 0.0),
    BlockKind.STRING: ValueFormat(BlockKind.STRING, str, str, ""),
    BlockKind.TIME_SPAN: ValueFormat(
        BlockKind.TIME_SPAN, _format_time_span, _parse_time_span, timedelta(0)
    ),
    BlockKind.VECTOR2: ValueFormat(BlockKind.VECTOR2, _format_vector2, _parse_vector2, Vector2()),
    BlockKind.COLOR: ValueFormat(BlockKind.COLOR, _format_color, _parse_color, Color()),
    BlockKind.TIMESTAMP: ValueFormat(
        BlockKind.TIMESTAMP, _format_timestamp, _parse_timestamp, datetime.min
    ),
}


def get_format(kind: BlockKind) -> ValueFormat:
    """Get the formatter/parser pair for a kind."""
    return VALUE_FORMATS[kind]
