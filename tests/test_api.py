import json
import tempfile
from pathlib import Path
from unittest import mock

from aiohttp import FormData
from aiohttp.test_utils import AioHTTPTestCase

from fieldvault.api import STATE_KEY, create_app
from fieldvault.config import FieldDef, FieldType, Schema

SCHEMA = Schema.of(
    FieldDef("Title", FieldType.STRING),
    FieldDef("Count", FieldType.INT),
    FieldDef("Tags", FieldType.STRING_LIST),
)


class FieldVaultApiTests(AioHTTPTestCase):
    async def get_application(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.db_path = str(Path(self.temp_dir.name) / "data.db")
        return create_app(self.db_path, SCHEMA)

    @property
    def store(self):
        return self.app[STATE_KEY].store

    async def _create_entry(self, body=None):
        if body is None:
            resp = await self.client.post("/fieldvault/entries")
        else:
            resp = await self.client.post("/fieldvault/entries", json=body)
        self.assertEqual(resp.status, 201)
        return await resp.json()

    async def test_health_and_schema(self):
        resp = await self.client.get("/fieldvault/health")
        self.assertEqual((await resp.json())["db_path"], self.db_path)

        resp = await self.client.get("/fieldvault/schema")
        fields = (await resp.json())["fields"]
        self.assertEqual([f["Name"] for f in fields], ["Title", "Count", "Tags"])

    async def test_create_empty_entry_uses_schema_defaults(self):
        created = await self._create_entry()

        self.assertEqual(created["data"], {"Title": "", "Count": 0, "Tags": []})
        self.assertEqual(self.store.get_document(created["id"]).data, created["data"])

    async def test_patch_field_parses_by_type(self):
        entry_id = (await self._create_entry())["id"]

        resp = await self.client.patch(f"/fieldvault/entries/{entry_id}", json={"field": "Count", "value": "12"})
        self.assertEqual(resp.status, 200)
        self.assertEqual((await resp.json())["data"]["Count"], 12)

        resp = await self.client.patch(f"/fieldvault/entries/{entry_id}", json={"field": "Count", "value": "x"})
        self.assertEqual(resp.status, 400)

        resp = await self.client.patch(f"/fieldvault/entries/{entry_id}", json={"field": "Note", "value": {"a": 1}})
        self.assertEqual((await resp.json())["data"]["Note"], {"a": 1})

    async def test_missing_entries_return_404(self):
        resp = await self.client.patch("/fieldvault/entries/99", json={"field": "Title", "value": "x"})
        self.assertEqual(resp.status, 404)
        resp = await self.client.get("/fieldvault/entries/99")
        self.assertEqual(resp.status, 404)
        resp = await self.client.put("/fieldvault/entries/99", json={"Title": "x"})
        self.assertEqual(resp.status, 404)

    async def test_replace_and_delete_entry(self):
        entry_id = (await self._create_entry({"Title": "A"}))["id"]

        resp = await self.client.put(f"/fieldvault/entries/{entry_id}", json={"Title": "B"})
        self.assertEqual((await resp.json())["data"], {"Title": "B", "Count": 0, "Tags": []})
        self.assertEqual(self.store.get_document(entry_id).data, {"Title": "B"})

        resp = await self.client.delete(f"/fieldvault/entries/{entry_id}")
        self.assertEqual(resp.status, 200)
        resp = await self.client.delete(f"/fieldvault/entries/{entry_id}")
        self.assertEqual(resp.status, 200)
        self.assertEqual(self.store.count_documents(), 0)

    async def test_list_entries_with_view(self):
        await self._create_entry({"Title": "A", "Tags": ["x"]})
        resp = await self.client.post("/fieldvault/views", json={"name": "Tags", "columns": ["Tags", "Gone"]})
        view_id = (await resp.json())["id"]

        resp = await self.client.get("/fieldvault/entries")
        body = await resp.json()
        self.assertEqual(body["view"]["name"], "All")
        self.assertEqual([c["Name"] for c in body["columns"]], ["Title", "Count", "Tags"])
        self.assertEqual(body["items"][0]["data"], {"Title": "A", "Count": 0, "Tags": ["x"]})

        resp = await self.client.get(f"/fieldvault/entries?view={view_id}")
        body = await resp.json()
        self.assertEqual([c["Name"] for c in body["columns"]], ["Tags"])

        resp = await self.client.get("/fieldvault/entries?view=999")
        self.assertEqual(resp.status, 404)

    async def test_view_crud(self):
        resp = await self.client.post("/fieldvault/views", json={"name": "Short", "columns": ["Title"]})
        self.assertEqual(resp.status, 201)
        view_id = (await resp.json())["id"]

        resp = await self.client.put(f"/fieldvault/views/{view_id}", json={"name": "Long", "columns": []})
        self.assertEqual(resp.status, 200)
        resp = await self.client.get("/fieldvault/views")
        self.assertEqual((await resp.json())["items"], [{"id": view_id, "name": "Long", "columns": []}])

        resp = await self.client.put("/fieldvault/views/0", json={"name": "All", "columns": []})
        self.assertEqual(resp.status, 400)
        resp = await self.client.put("/fieldvault/views/77", json={"name": "x", "columns": []})
        self.assertEqual(resp.status, 404)
        resp = await self.client.post("/fieldvault/views", json={"name": "Bad", "columns": "Title"})
        self.assertEqual(resp.status, 400)

        for target in (0, 77, view_id):
            resp = await self.client.delete(f"/fieldvault/views/{target}")
            self.assertEqual(resp.status, 200)
        self.assertEqual(self.store.list_views(), [])

    async def test_export_then_import_raw_body(self):
        await self._create_entry({"Title": "A"})
        await self.client.post("/fieldvault/views", json={"name": "Short", "columns": ["Title"]})

        resp = await self.client.get("/fieldvault/export")
        self.assertIn("attachment", resp.headers["Content-Disposition"])
        exported = await resp.read()
        self.assertEqual(json.loads(exported)["entries"][0]["ID"], 1)

        resp = await self.client.post("/fieldvault/import", data=exported)
        self.assertEqual(await resp.json(), {"entries": 1, "views": 1})
        self.assertEqual([e.id for e in self.store.list_documents()], [2])

    async def test_import_multipart_and_bad_payload(self):
        form = FormData()
        form.add_field("file", b'[{"Title": "From file"}]', filename="export.json", content_type="application/json")

        resp = await self.client.post("/fieldvault/import", data=form)
        self.assertEqual(await resp.json(), {"entries": 1, "views": None})

        resp = await self.client.post("/fieldvault/import", data=b"42")
        self.assertEqual(resp.status, 400)
        self.assertEqual(self.store.count_documents(), 1)

    async def test_reset_swaps_in_fresh_store(self):
        await self._create_entry({"Title": "A"})
        await self._create_entry({"Title": "B"})
        await self.client.post("/fieldvault/views", json={"name": "Short", "columns": ["Title"]})
        old_store = self.store

        resp = await self.client.post("/fieldvault/reset")

        self.assertEqual(await resp.json(), {"ok": True, "entries": 1})
        self.assertIsNot(self.store, old_store)
        self.assertEqual([e.data for e in self.store.list_documents()], [{"Title": "", "Count": 0, "Tags": []}])
        self.assertEqual(self.store.list_views(), [])

    async def test_failed_reset_keeps_serving_old_data(self):
        await self._create_entry({"Title": "A"})
        old_store = self.store

        with mock.patch("fieldvault.api.reset_store", side_effect=PermissionError("denied")):
            with self.assertLogs("FieldVault", level="WARNING"):
                resp = await self.client.post("/fieldvault/reset")

        self.assertEqual(resp.status, 500)
        self.assertIn("denied", (await resp.json())["error"])
        self.assertIsNot(self.store, old_store)
        resp = await self.client.get("/fieldvault/entries")
        self.assertEqual(resp.status, 200)
        self.assertEqual([i["data"]["Title"] for i in (await resp.json())["items"]], ["A"])


class FieldVaultLinkApiTests(AioHTTPTestCase):
    async def get_application(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.base = Path(self.temp_dir.name)
        schema = Schema.of(FieldDef("Title", FieldType.STRING), FieldDef("Doc", FieldType.LINK))
        return create_app(str(self.base / "data.db"), schema)

    async def test_get_entry_reports_link_targets(self):
        (self.base / "notes.txt").write_text("hi", encoding="utf-8")
        store = self.app[STATE_KEY].store
        present = store.insert_document({"Doc": "notes.txt"})
        missing = store.insert_document({"Doc": "gone.txt"})
        blank = store.insert_document({"Title": "no link"})

        resp = await self.client.get(f"/fieldvault/entries/{present}")
        self.assertEqual((await resp.json())["links"], {"Doc": True})
        resp = await self.client.get(f"/fieldvault/entries/{missing}")
        self.assertEqual((await resp.json())["links"], {"Doc": False})
        resp = await self.client.get(f"/fieldvault/entries/{blank}")
        body = await resp.json()
        self.assertEqual(body["data"]["Doc"], "")
        self.assertEqual(body["links"], {"Doc": False})
