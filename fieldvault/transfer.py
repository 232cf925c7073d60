"""Bulk export/import of entries and views.

Export always produces the object shape::

    {"version": "1.0", "exported_at": "...",
     "entries": [{"<field>": ..., "ID": 1}, ...],
     "views": [{"Name": "...", "Columns": ["<field>", ...]}, ...]}

Import also accepts a bare array of documents (older exports). Import is
destructive: existing entries are replaced, and existing views are replaced
when the source carries a ``views`` key.
"""

import json
import logging
from pathlib import Path

from .constants import EXPORT_FORMAT_VERSION, EXPORT_ID_KEY
from .db import attach_id, merge_with_schema
from .utils import json_pretty, now_iso

logger = logging.getLogger("FieldVault")


class TransferFormatError(ValueError):
    """Import payload is not a recognised bundle."""


def export_bundle(store, schema):
    entries = [attach_id(e.id, merge_with_schema(schema, e.data)) for e in store.list_documents()]
    views = [{"Name": v.name, "Columns": list(v.columns)} for v in store.list_views()]
    return {
        "version": EXPORT_FORMAT_VERSION,
        "exported_at": now_iso(),
        "entries": entries,
        "views": views,
    }


def export_bytes(store, schema):
    return json_pretty(export_bundle(store, schema)).encode("utf-8")


def _documents_from(items, where):
    if not isinstance(items, list):
        raise TransferFormatError(f"{where} must be an array")
    docs = []
    for i, item in enumerate(items):
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise TransferFormatError(f"{where}[{i}] is not an object")
        doc = dict(item)
        # Ids are reassigned on insert.
        doc.pop(EXPORT_ID_KEY, None)
        docs.append(doc)
    return docs


def _views_from(items):
    if items is None:
        return []
    if not isinstance(items, list):
        raise TransferFormatError("views must be an array")
    views = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("import: skipping views[%d], not an object", i)
            continue
        name = item.get("Name")
        columns = item.get("Columns")
        if not isinstance(columns, list):
            columns = []
        views.append(
            (
                name if isinstance(name, str) else "",
                [c for c in columns if isinstance(c, str)],
            )
        )
    return views


def parse_bundle(raw):
    """Decode import bytes into ``(documents, views)``; ``views`` is None when absent."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TransferFormatError("import data must be UTF-8 encoded") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TransferFormatError(f"invalid JSON: {exc}") from exc

    if isinstance(payload, list):
        return _documents_from(payload, "entries"), None
    if isinstance(payload, dict):
        docs = _documents_from(payload.get("entries") or [], "entries")
        views = _views_from(payload["views"]) if "views" in payload else None
        return docs, views
    raise TransferFormatError("unknown import format")


def import_bytes(store, schema, raw):
    docs, views = parse_bundle(raw)

    store.delete_all_documents()
    for doc in docs:
        store.insert_document(merge_with_schema(schema, doc))

    imported_views = None
    if views is not None:
        store.delete_all_views()
        for name, columns in views:
            store.create_view(name, columns)
        imported_views = len(views)

    logger.info("Imported %d entries, views: %s", len(docs), imported_views)
    return {"entries": len(docs), "views": imported_views}


def export_file(store, schema, path):
    data = export_bytes(store, schema)
    Path(path).write_bytes(data)
    return len(data)


def import_file(store, schema, path):
    return import_bytes(store, schema, Path(path).read_bytes())
