import json
import logging
import os
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field

logger = logging.getLogger("FieldVault")

from .constants import ALL_VIEW_ID, ALL_VIEW_NAME, EXPORT_ID_KEY, RAW_KEY
from .migrate import migrate_legacy_entries
from .paths import get_db_path
from .schema import SCHEMA_SQL
from .utils import json_dumps
from .values import zero_value


class EntryNotFoundError(KeyError):
    """No entry row with the requested id."""


class ViewNotFoundError(KeyError):
    """No saved view with the requested id."""


@dataclass
class Entry:
    id: int
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class View:
    id: int
    name: str
    # None only for the implicit "All" view.
    columns: tuple = None

    def __post_init__(self):
        if self.columns is not None:
            object.__setattr__(self, "columns", tuple(self.columns))

    @property
    def is_all(self):
        return self.id == ALL_VIEW_ID

    def to_dict(self):
        columns = None if self.columns is None else list(self.columns)
        return {"id": self.id, "name": self.name, "columns": columns}


ALL_VIEW = View(ALL_VIEW_ID, ALL_VIEW_NAME, None)


def merge_with_schema(schema, doc):
    """Overlay ``doc`` on zero values for every schema field.

    Keys outside the schema pass through unchanged. The result is a new dict;
    nothing is written back to the store.
    """
    merged = {f.name: zero_value(f.type) for f in schema}
    if doc:
        merged.update(doc)
    return merged


def empty_document(schema):
    return merge_with_schema(schema, None)


def attach_id(entry_id, doc):
    out = dict(doc)
    out[EXPORT_ID_KEY] = entry_id
    return out


def _decode_document(raw):
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        data = None
    if not isinstance(data, dict):
        return {RAW_KEY: "" if raw is None else str(raw)}
    return data


def _encode_document(doc):
    if not isinstance(doc, Mapping):
        raise ValueError(f"document must be a JSON object, got {type(doc).__name__}")
    try:
        return json_dumps(dict(doc))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"document is not JSON-serializable: {exc}") from exc


def _decode_columns(raw):
    try:
        cols = json.loads(raw or "[]")
    except (TypeError, ValueError):
        return ()
    if not isinstance(cols, list):
        return ()
    return tuple(str(c) for c in cols)


def _encode_columns(columns):
    return json_dumps([str(c) for c in (columns or [])])


class FieldVaultStore:
    """Entries and saved views over a single SQLite connection.

    Opening a store ensures both tables exist and upgrades a legacy entries
    table before returning. All calls are synchronous and expect one caller
    at a time.
    """

    def __init__(self, db_path=None):
        self.db_path = db_path or get_db_path()
        if self.db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        self.conn = self._connect()
        try:
            self._init_db()
        except Exception:
            self.conn.close()
            raise

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        self.conn.executescript(SCHEMA_SQL)
        migrated = migrate_legacy_entries(self.conn)
        if migrated:
            logger.info("Legacy entries migrated into %s", self.db_path)
        self.conn.commit()

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # ── entries ──

    def insert_document(self, doc):
        data = _encode_document(doc)
        cur = self.conn.execute("INSERT INTO entries(data) VALUES(?)", (data,))
        self.conn.commit()
        return cur.lastrowid

    def list_documents(self):
        rows = self.conn.execute("SELECT id, data FROM entries ORDER BY id").fetchall()
        return [Entry(row["id"], _decode_document(row["data"])) for row in rows]

    def get_document(self, entry_id):
        return Entry(entry_id, self._read_document(entry_id))

    def count_documents(self):
        return self.conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def _read_document(self, entry_id):
        row = self.conn.execute("SELECT data FROM entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise EntryNotFoundError(f"entry {entry_id} not found")
        return _decode_document(row["data"])

    def _write_document(self, entry_id, doc):
        data = _encode_document(doc)
        cur = self.conn.execute("UPDATE entries SET data = ? WHERE id = ?", (data, entry_id))
        self.conn.commit()
        return cur.rowcount

    def update_field(self, entry_id, field_name, value):
        # Read-modify-write without a transaction; concurrent writers to the
        # same id can lose an update.
        doc = self._read_document(entry_id)
        doc[field_name] = value
        self._write_document(entry_id, doc)
        return doc

    def replace_document(self, entry_id, doc):
        if not self._write_document(entry_id, doc):
            raise EntryNotFoundError(f"entry {entry_id} not found")

    def delete_document(self, entry_id):
        self.conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        self.conn.commit()

    def delete_all_documents(self):
        cur = self.conn.execute("DELETE FROM entries")
        self.conn.commit()
        return cur.rowcount

    # ── views ──

    def list_views(self):
        rows = self.conn.execute("SELECT id, name, data FROM views ORDER BY id").fetchall()
        return [View(row["id"], row["name"] or "", _decode_columns(row["data"])) for row in rows]

    def get_view(self, view_id):
        if view_id == ALL_VIEW_ID:
            return ALL_VIEW
        row = self.conn.execute("SELECT id, name, data FROM views WHERE id = ?", (view_id,)).fetchone()
        if row is None:
            raise ViewNotFoundError(f"view {view_id} not found")
        return View(row["id"], row["name"] or "", _decode_columns(row["data"]))

    def create_view(self, name, columns):
        cur = self.conn.execute(
            "INSERT INTO views(name, data) VALUES(?, ?)",
            (str(name or ""), _encode_columns(columns)),
        )
        self.conn.commit()
        return cur.lastrowid

    def update_view(self, view_id, name, columns):
        cur = self.conn.execute(
            "UPDATE views SET name = ?, data = ? WHERE id = ?",
            (str(name or ""), _encode_columns(columns), view_id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise ViewNotFoundError(f"view {view_id} not found")

    def delete_view(self, view_id):
        if view_id == ALL_VIEW_ID:
            return
        self.conn.execute("DELETE FROM views WHERE id = ?", (view_id,))
        self.conn.commit()

    def delete_all_views(self):
        cur = self.conn.execute("DELETE FROM views")
        self.conn.commit()
        return cur.rowcount


def reset_store(db_path, schema):
    """Replace the database file with a blank one holding a single empty entry.

    The caller must have closed any handle on ``db_path``; the returned store
    is a new handle.
    """
    db_path = str(db_path)
    for suffix in ("", "-journal", "-wal", "-shm"):
        try:
            os.remove(db_path + suffix)
        except FileNotFoundError:
            pass
    store = FieldVaultStore(db_path)
    store.insert_document(empty_document(schema))
    store.delete_all_views()
    logger.info("Created new blank database at %s", db_path)
    return store
