import re
from enum import Enum

from .config import FieldType


class ValueKind(Enum):
    INTEGER = "integer"
    TEXT = "text"
    TEXT_LIST = "text_list"
    NULL = "null"
    # Floats, booleans, objects, mixed lists.
    OTHER = "other"


def classify(value):
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.OTHER
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return ValueKind.TEXT_LIST
    return ValueKind.OTHER


def zero_value(field_type):
    if field_type is FieldType.INT:
        return 0
    if field_type is FieldType.STRING_LIST:
        return []
    return ""


def coerce_column_value(value):
    """Map a value read from a legacy SQLite column onto a JSON-safe value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    kind = classify(value)
    if kind in (ValueKind.NULL, ValueKind.INTEGER, ValueKind.TEXT):
        return value
    if isinstance(value, float):
        return value
    return str(value)


_leading_int_re = re.compile(r"\s*([+-]?\d+)")


def parse_legacy_id(value):
    """Leading integer of a legacy id column; 0 when there is none."""
    if classify(value) is ValueKind.INTEGER:
        return value
    if value is None:
        return 0
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    m = _leading_int_re.match(str(value))
    return int(m.group(1)) if m else 0
