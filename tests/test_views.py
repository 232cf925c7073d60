import tempfile
import unittest
from pathlib import Path

from fieldvault.cells import visible_fields
from fieldvault.config import FieldDef, FieldType, Schema
from fieldvault.db import ALL_VIEW, FieldVaultStore, ViewNotFoundError

SCHEMA = Schema.of(
    FieldDef("Title", FieldType.STRING),
    FieldDef("Count", FieldType.INT),
    FieldDef("Tags", FieldType.STRING_LIST),
)


class FieldVaultViewTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = FieldVaultStore(str(Path(self.temp_dir.name) / "data.db"))

    def tearDown(self):
        self.store.close()
        self.temp_dir.cleanup()

    def test_create_and_list_in_id_order(self):
        a = self.store.create_view("Short", ["Title"])
        b = self.store.create_view("Numbers", ["Count", "Title"])

        views = self.store.list_views()

        self.assertLess(a, b)
        self.assertEqual(
            [(v.id, v.name, v.columns) for v in views],
            [(a, "Short", ("Title",)), (b, "Numbers", ("Count", "Title"))],
        )
        self.assertNotIn(ALL_VIEW, views)

    def test_update_view(self):
        view_id = self.store.create_view("Short", ["Title"])

        self.store.update_view(view_id, "Renamed", ["Tags"])

        view = self.store.get_view(view_id)
        self.assertEqual((view.name, view.columns), ("Renamed", ("Tags",)))

    def test_update_missing_view_raises(self):
        with self.assertRaises(ViewNotFoundError):
            self.store.update_view(42, "Nope", [])
        with self.assertRaises(KeyError):
            self.store.get_view(42)

    def test_delete_is_idempotent_and_zero_is_a_no_op(self):
        view_id = self.store.create_view("Short", ["Title"])

        self.store.delete_view(9999)
        self.store.delete_view(0)
        self.assertEqual(len(self.store.list_views()), 1)

        self.store.delete_view(view_id)
        self.store.delete_view(view_id)
        self.assertEqual(self.store.list_views(), [])

    def test_delete_all_views(self):
        self.store.create_view("One", ["Title"])
        self.store.create_view("Two", [])

        self.assertEqual(self.store.delete_all_views(), 2)
        self.assertEqual(self.store.list_views(), [])

    def test_empty_view_is_distinct_from_all(self):
        view_id = self.store.create_view("Nothing", [])

        empty = self.store.get_view(view_id)

        self.assertEqual(empty.columns, ())
        self.assertEqual(visible_fields(SCHEMA, empty), [])
        self.assertIs(self.store.get_view(0), ALL_VIEW)
        self.assertTrue(ALL_VIEW.is_all)
        self.assertEqual(visible_fields(SCHEMA, ALL_VIEW), list(SCHEMA))

    def test_view_columns_are_immutable(self):
        columns = ["Title"]
        view_id = self.store.create_view("Short", columns)
        view = self.store.get_view(view_id)
        columns.append("Tags")

        with self.assertRaises(AttributeError):
            view.columns.append("Tags")
        self.assertEqual(self.store.get_view(view_id).columns, ("Title",))
        self.assertEqual(view.to_dict(), {"id": view_id, "name": "Short", "columns": ["Title"]})

    def test_stale_columns_are_stored_and_dropped_when_rendered(self):
        view_id = self.store.create_view("Mixed", ["Tags", "Removed", "Title"])

        view = self.store.get_view(view_id)

        self.assertEqual(view.columns, ("Tags", "Removed", "Title"))
        self.assertEqual([f.name for f in visible_fields(SCHEMA, view)], ["Title", "Tags"])

    def test_corrupt_columns_read_as_empty(self):
        self.store.conn.execute("INSERT INTO views(name, data) VALUES('Broken', 'not json')")
        self.store.conn.commit()

        self.assertEqual(self.store.list_views()[0].columns, ())


if __name__ == "__main__":
    unittest.main()
