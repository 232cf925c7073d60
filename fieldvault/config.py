"""Field schema loading.

A schema is the ordered list of fields every document is rendered against.
Two sources are understood:

- a JSON array of ``{"Name", "Type", "Label"}`` objects (preferred);
- the older Go-style struct text, e.g.::

      type DataEntry struct {
          Title string `json:"title"`
          Tags  []string // free-form
      }

Both go through the same type normalization: anything other than ``int``,
``string``, ``[]string`` or ``link`` becomes ``string``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger("FieldVault")


class SchemaError(ValueError):
    """Schema source could not be parsed."""


class FieldType(Enum):
    INT = "int"
    STRING = "string"
    STRING_LIST = "[]string"
    LINK = "link"

    @classmethod
    def parse(cls, token) -> "FieldType":
        try:
            return cls(str(token or "").strip())
        except ValueError:
            return cls.STRING


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: FieldType = FieldType.STRING
    label: str = ""

    def __post_init__(self):
        if not self.label:
            object.__setattr__(self, "label", self.name)

    def to_dict(self) -> dict:
        return {"Name": self.name, "Type": self.type.value, "Label": self.label}


@dataclass(frozen=True)
class Schema:
    fields: tuple[FieldDef, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.fields)

    def __len__(self):
        return len(self.fields)

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name):
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_list(self) -> list[dict]:
        return [f.to_dict() for f in self.fields]

    @classmethod
    def of(cls, *fields: FieldDef) -> "Schema":
        return cls(tuple(fields))


def _lookup(obj: dict, key: str):
    # Field keys are matched case-insensitively ("Name", "name", "NAME").
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for k, v in obj.items():
        if isinstance(k, str) and k.lower() == lowered:
            return v
    return None


def parse_schema_json(text: str) -> Schema:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"invalid schema JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise SchemaError("schema JSON must be an array of field objects")

    fields = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SchemaError(f"schema entry #{i} is not an object")
        name = str(_lookup(item, "Name") or "").strip()
        if not name:
            logger.warning("schema entry #%d has no name, skipping", i)
            continue
        fields.append(
            FieldDef(
                name=name,
                type=FieldType.parse(_lookup(item, "Type")),
                label=str(_lookup(item, "Label") or ""),
            )
        )
    return Schema(tuple(fields))


_field_line_re = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s+((?:\[\])?[A-Za-z_][A-Za-z0-9_]*)")


def _is_struct_open(line: str) -> bool:
    return line.startswith("type") and "DataEntry" in line and "struct" in line


def _strip_annotations(line: str) -> str:
    idx = line.find("`")
    if idx >= 0:
        line = line[:idx].strip()
    idx = line.find("//")
    if idx >= 0:
        line = line[:idx].strip()
    return line


def parse_schema_text(text: str) -> Schema:
    fields = []
    inside = False
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("//"):
            continue
        if not inside:
            inside = _is_struct_open(line)
            continue
        if line.startswith("}"):
            break
        m = _field_line_re.match(_strip_annotations(line))
        if m is None:
            continue
        name = m.group(1)
        fields.append(FieldDef(name=name, type=FieldType.parse(m.group(2)), label=name))
    return Schema(tuple(fields))


def load_schema(path) -> Schema:
    path = Path(path)
    text = path.read_text(encoding="utf-8-sig")
    if path.suffix.lower() == ".json":
        schema = parse_schema_json(text)
    else:
        schema = parse_schema_text(text)
    logger.info("Loaded schema from %s: %s", path, ", ".join(schema.names) or "(no fields)")
    return schema
