import json
import logging
import os
import sqlite3
from datetime import datetime, timezone

from aiohttp import web

from .cells import link_exists, parse_input, visible_fields
from .config import FieldType
from .db import FieldVaultStore, merge_with_schema, reset_store
from .migrate import MigrationError
from .transfer import export_bytes, import_bytes

logger = logging.getLogger("FieldVault")


class AppState:
    """Mutable holder so "reset" can swap the store handle of a running app."""

    def __init__(self, db_path, schema, store=None):
        self.db_path = db_path
        self.schema = schema
        self.store = store or FieldVaultStore(db_path)


STATE_KEY = web.AppKey("fieldvault_state", AppState)


def _json_response(obj, status=200):
    return web.Response(
        status=status,
        text=json.dumps(obj, ensure_ascii=False),
        content_type="application/json",
    )


def _bad_request(msg):
    return _json_response({"error": msg}, status=400)


def _not_found(msg):
    return _json_response({"error": msg}, status=404)


def _download_name(ext):
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"fieldvault-export-{stamp}.{ext}"


async def _json_object(request, allow_empty=False):
    if allow_empty and not request.can_read_body:
        return {}
    try:
        payload = await request.json()
    except ValueError:
        return None
    if payload is None and allow_empty:
        return {}
    return payload if isinstance(payload, dict) else None


def setup_routes(app):
    routes = web.RouteTableDef()

    def _state(request):
        return request.app[STATE_KEY]

    @routes.get("/fieldvault/health")
    async def health(request):
        return _json_response({"ok": True, "db_path": _state(request).db_path})

    @routes.get("/fieldvault/schema")
    async def get_schema(request):
        return _json_response({"fields": _state(request).schema.to_list()})

    @routes.get("/fieldvault/entries")
    async def list_entries(request):
        state = _state(request)
        try:
            view_id = int(request.query.get("view", "0"))
        except (TypeError, ValueError):
            return _bad_request("view must be an integer id")
        try:
            view = state.store.get_view(view_id)
        except KeyError:
            return _not_found("view not found")
        items = [
            {"id": e.id, "data": merge_with_schema(state.schema, e.data)}
            for e in state.store.list_documents()
        ]
        return _json_response(
            {
                "view": view.to_dict(),
                "columns": [f.to_dict() for f in visible_fields(state.schema, view)],
                "items": items,
                "total": len(items),
            }
        )

    @routes.post("/fieldvault/entries")
    async def create_entry(request):
        state = _state(request)
        payload = await _json_object(request, allow_empty=True)
        if payload is None:
            return _bad_request("request body must be a JSON object")
        doc = merge_with_schema(state.schema, payload)
        entry_id = state.store.insert_document(doc)
        return _json_response({"id": entry_id, "data": doc}, status=201)

    @routes.get(r"/fieldvault/entries/{entry_id:\d+}")
    async def get_entry(request):
        state = _state(request)
        try:
            entry = state.store.get_document(int(request.match_info["entry_id"]))
        except KeyError:
            return _not_found("entry not found")
        data = merge_with_schema(state.schema, entry.data)
        base_dir = os.path.dirname(os.path.abspath(state.db_path))
        links = {
            f.name: link_exists(data.get(f.name), base_dir)
            for f in state.schema
            if f.type is FieldType.LINK
        }
        return _json_response({"id": entry.id, "data": data, "links": links})

    @routes.patch(r"/fieldvault/entries/{entry_id:\d+}")
    async def update_entry_field(request):
        state = _state(request)
        entry_id = int(request.match_info["entry_id"])
        payload = await _json_object(request)
        if payload is None or not isinstance(payload.get("field"), str):
            return _bad_request('expected {"field": <name>, "value": <value>}')
        name = payload["field"]
        value = payload.get("value")
        field = state.schema.get(name)
        if field is not None:
            try:
                value = parse_input(field, value)
            except ValueError as exc:
                return _bad_request(str(exc))
        try:
            doc = state.store.update_field(entry_id, name, value)
        except KeyError:
            return _not_found("entry not found")
        return _json_response({"id": entry_id, "data": merge_with_schema(state.schema, doc)})

    @routes.put(r"/fieldvault/entries/{entry_id:\d+}")
    async def replace_entry(request):
        state = _state(request)
        entry_id = int(request.match_info["entry_id"])
        payload = await _json_object(request)
        if payload is None:
            return _bad_request("request body must be a JSON object")
        try:
            state.store.replace_document(entry_id, payload)
        except KeyError:
            return _not_found("entry not found")
        except ValueError as exc:
            return _bad_request(str(exc))
        return _json_response({"id": entry_id, "data": merge_with_schema(state.schema, payload)})

    @routes.delete(r"/fieldvault/entries/{entry_id:\d+}")
    async def delete_entry(request):
        entry_id = int(request.match_info["entry_id"])
        _state(request).store.delete_document(entry_id)
        return _json_response({"deleted": entry_id})

    @routes.get("/fieldvault/views")
    async def list_views(request):
        views = _state(request).store.list_views()
        return _json_response({"items": [v.to_dict() for v in views]})

    def _view_payload(payload):
        if payload is None:
            return None, None
        columns = payload.get("columns", [])
        if not isinstance(columns, list):
            return None, None
        return str(payload.get("name") or ""), [str(c) for c in columns]

    @routes.post("/fieldvault/views")
    async def create_view(request):
        name, columns = _view_payload(await _json_object(request))
        if name is None:
            return _bad_request('expected {"name": <string>, "columns": [<field>, ...]}')
        view_id = _state(request).store.create_view(name, columns)
        return _json_response({"id": view_id, "name": name, "columns": columns}, status=201)

    @routes.put(r"/fieldvault/views/{view_id:\d+}")
    async def update_view(request):
        view_id = int(request.match_info["view_id"])
        if view_id == 0:
            return _bad_request("the All view cannot be edited")
        name, columns = _view_payload(await _json_object(request))
        if name is None:
            return _bad_request('expected {"name": <string>, "columns": [<field>, ...]}')
        try:
            _state(request).store.update_view(view_id, name, columns)
        except KeyError:
            return _not_found("view not found")
        return _json_response({"id": view_id, "name": name, "columns": columns})

    @routes.delete(r"/fieldvault/views/{view_id:\d+}")
    async def delete_view(request):
        view_id = int(request.match_info["view_id"])
        _state(request).store.delete_view(view_id)
        return _json_response({"deleted": view_id})

    @routes.get("/fieldvault/export")
    async def export_vault(request):
        state = _state(request)
        return web.Response(
            body=export_bytes(state.store, state.schema),
            content_type="application/json",
            charset="utf-8",
            headers={"Content-Disposition": f'attachment; filename="{_download_name("json")}"'},
        )

    @routes.post("/fieldvault/import")
    async def import_vault(request):
        state = _state(request)
        content_type = (request.content_type or "").lower()
        if content_type.startswith("multipart/"):
            form = await request.post()
            upload = form.get("file")
            if upload is None or not getattr(upload, "file", None):
                return _bad_request("missing import file")
            raw_bytes = upload.file.read()
        else:
            raw_bytes = await request.read()
        try:
            result = import_bytes(state.store, state.schema, raw_bytes)
        except ValueError as exc:
            return _bad_request(str(exc))
        return _json_response(result)

    @routes.post("/fieldvault/reset")
    async def reset(request):
        state = _state(request)
        state.store.close()
        try:
            state.store = reset_store(state.db_path, state.schema)
        except (OSError, sqlite3.Error, MigrationError) as exc:
            logger.warning("Reset of %s failed: %s", state.db_path, exc)
            state.store = FieldVaultStore(state.db_path)
            return _json_response({"error": f"reset failed: {exc}"}, status=500)
        return _json_response({"ok": True, "entries": state.store.count_documents()})

    app.add_routes(routes)


async def _close_store(app):
    app[STATE_KEY].store.close()


def create_app(db_path, schema, store=None):
    app = web.Application()
    app[STATE_KEY] = AppState(db_path, schema, store=store)
    setup_routes(app)
    app.on_cleanup.append(_close_store)
    logger.info("API routes registered for %s", db_path)
    return app
