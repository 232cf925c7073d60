"""Helpers for whatever renders entries as a grid.

They work on merged documents and never touch the store.
"""

from pathlib import Path

from .config import FieldType
from .values import ValueKind, classify


def visible_fields(schema, view=None):
    """Schema fields shown by ``view``, in schema order.

    ``None`` or the "All" view shows everything; column names that are no
    longer in the schema are ignored.
    """
    if view is None or view.columns is None:
        return list(schema)
    wanted = set(view.columns)
    return [f for f in schema if f.name in wanted]


def display_value(field, doc, entry_id=None):
    value = doc.get(field.name)
    kind = classify(value)

    if field.type is FieldType.INT:
        if field.name.upper() == "ID" and entry_id is not None:
            return str(entry_id)
        if kind is ValueKind.INTEGER:
            return str(value)
        if isinstance(value, float) or kind is ValueKind.TEXT:
            try:
                return str(int(value))
            except (ValueError, OverflowError):
                return ""
        return ""

    if field.type is FieldType.STRING_LIST:
        if kind is ValueKind.TEXT_LIST:
            return list(value)
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        if kind is ValueKind.NULL or value == "":
            return []
        return [str(value)]

    if kind is ValueKind.NULL:
        return ""
    return value if kind is ValueKind.TEXT else str(value)


def parse_input(field, value):
    """Convert edited cell input into the value stored for ``field``."""
    kind = classify(value)

    if field.type is FieldType.INT:
        if kind is ValueKind.INTEGER:
            return value
        text = "" if value is None else str(value).strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            raise ValueError(f"{field.name} expects an integer, got {value!r}") from None

    if field.type is FieldType.STRING_LIST:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        if kind is ValueKind.NULL:
            return []
        return [line.strip() for line in str(value).splitlines() if line.strip()]

    if kind is ValueKind.NULL:
        return ""
    return value if kind is ValueKind.TEXT else str(value)


def resolve_link(value, base_dir):
    return Path(base_dir) / str(value or "")


def link_exists(value, base_dir):
    if not value:
        return False
    return resolve_link(value, base_dir).exists()
