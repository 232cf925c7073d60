"""One-time upgrade of the fixed-column ``entries`` table.

Older databases stored one SQLite column per field. The current layout keeps a
single JSON ``data`` column, so when ``entries`` has columns but none named
``data`` the whole table is rewritten:

    entries(id, Title, Count, ...)  ->  entries(id, data='{"Title": ..., "Count": ...}')

Explicit ids are preserved and the AUTOINCREMENT counter is moved to the highest
migrated id. A table that was just created by ``SCHEMA_SQL`` always has ``data``,
so fresh databases never reach the rewrite. Note the heuristic also fires for a
legacy table with zero rows; that case rewrites an empty table, which is harmless.
"""

import logging
import sqlite3

from .schema import REPLACEMENT_ENTRIES_SQL
from .utils import json_dumps
from .values import coerce_column_value, parse_legacy_id

logger = logging.getLogger("FieldVault")


class MigrationError(RuntimeError):
    """A structural migration step failed; the database cannot be used."""


def _quote(name):
    return '"' + str(name).replace('"', '""') + '"'


def entries_columns(conn):
    try:
        rows = conn.execute("PRAGMA table_info(entries)").fetchall()
    except sqlite3.Error as exc:
        logger.warning("Unable to read entries table info: %s", exc)
        return []
    cols = []
    for row in rows:
        try:
            cols.append(row[1])
        except (IndexError, TypeError) as exc:
            logger.warning("Skipping unreadable table_info row: %s", exc)
    return cols


def needs_migration(cols):
    return bool(cols) and "data" not in cols


def _row_to_document(columns, values):
    entry_id = 0
    doc = {}
    for col, val in zip(columns, values):
        if col == "id":
            entry_id = parse_legacy_id(val)
            continue
        doc[col] = coerce_column_value(val)
    return entry_id, doc


def _select_legacy_rows(conn, cols):
    order = _quote("id") if "id" in cols else "rowid"
    sql = f"SELECT {', '.join(_quote(c) for c in cols)} FROM entries ORDER BY {order}"
    # Read text as bytes so a row with undecodable text cannot break the scan.
    previous = conn.text_factory
    conn.text_factory = bytes
    try:
        cur = conn.execute(sql)
        columns = [d[0] for d in cur.description]
        return columns, cur.fetchall()
    finally:
        conn.text_factory = previous


def _resync_sequence(conn):
    max_id = conn.execute("SELECT MAX(id) FROM entries").fetchone()[0]
    conn.execute("DELETE FROM sqlite_sequence WHERE name IN ('entries', 'entries_new')")
    if max_id is not None:
        conn.execute("INSERT INTO sqlite_sequence(name, seq) VALUES('entries', ?)", (max_id,))
    return max_id


def migrate_legacy_entries(conn):
    """Rewrite a legacy ``entries`` table in place. Returns the number of rows migrated."""
    cols = entries_columns(conn)
    if not needs_migration(cols):
        return 0

    logger.info("Migrating legacy entries table (columns: %s)", ", ".join(cols))
    try:
        columns, rows = _select_legacy_rows(conn, cols)
        conn.execute("DROP TABLE IF EXISTS entries_new")
        conn.execute(REPLACEMENT_ENTRIES_SQL)
    except sqlite3.Error as exc:
        conn.rollback()
        raise MigrationError(f"failed to prepare entries migration: {exc}") from exc

    converted = []
    for values in rows:
        try:
            entry_id, doc = _row_to_document(columns, tuple(values))
            converted.append((entry_id, json_dumps(doc)))
        except (TypeError, ValueError) as exc:
            logger.warning("migration: skipping row %r: %s", tuple(values)[:1], exc)

    # Rows with a known id go first so auto-assigned ids cannot take them.
    converted.sort(key=lambda item: item[0] <= 0)

    migrated = 0
    for entry_id, data in converted:
        try:
            if entry_id > 0:
                conn.execute("INSERT INTO entries_new(id, data) VALUES(?, ?)", (entry_id, data))
            else:
                conn.execute("INSERT INTO entries_new(data) VALUES(?)", (data,))
        except sqlite3.Error as exc:
            logger.warning("migration: insert failed for id=%s: %s", entry_id, exc)
            continue
        migrated += 1

    try:
        conn.execute("DROP TABLE entries")
        conn.execute("ALTER TABLE entries_new RENAME TO entries")
        max_id = _resync_sequence(conn)
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise MigrationError(f"failed to swap migrated entries table: {exc}") from exc

    logger.info("Migrated %d of %d legacy rows (max id %s)", migrated, len(rows), max_id)
    return migrated
