SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS entries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  data TEXT
);

-- Saved column projections; data holds a JSON array of field names.
CREATE TABLE IF NOT EXISTS views (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT,
  data TEXT
);
"""

REPLACEMENT_ENTRIES_SQL = "CREATE TABLE entries_new (id INTEGER PRIMARY KEY AUTOINCREMENT, data TEXT)"
