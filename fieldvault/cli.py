"""
Command line entry point for FieldVault.

Usage:
    fieldvault --config config.json --db data.db serve --port 8765
    fieldvault export backup.json
    fieldvault import backup.json
    fieldvault new
    fieldvault schema
"""

import argparse
import json
import logging
import sys

from . import APP_NAME
from .config import load_schema
from .db import FieldVaultStore, reset_store
from .migrate import MigrationError
from .paths import get_config_path, get_db_path
from .transfer import export_file, import_file

logger = logging.getLogger("FieldVault")


def build_parser():
    parser = argparse.ArgumentParser(prog="fieldvault", description=f"{APP_NAME} record store")
    parser.add_argument("--db", help="SQLite database file (default: $FIELDVAULT_DB or ./data.db)")
    parser.add_argument("--config", help="Schema file, .json or struct text (default: ./config.json)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8765)

    export_parser = subparsers.add_parser("export", help="Write entries and views to a JSON file")
    export_parser.add_argument("output", help="Destination file")

    import_parser = subparsers.add_parser("import", help="Replace entries (and views) from a JSON file")
    import_parser.add_argument("input", help="Source file")

    subparsers.add_parser("new", help="Erase the database and start with one blank entry")
    subparsers.add_parser("schema", help="Print the loaded schema as JSON")
    return parser


def run(args):
    schema = load_schema(args.config or get_config_path())
    db_path = args.db or get_db_path()

    if args.command == "schema":
        print(json.dumps(schema.to_list(), ensure_ascii=False, indent=2))
        return 0

    if args.command == "new":
        reset_store(db_path, schema).close()
        print(f"Created new blank database at {db_path}")
        return 0

    if args.command == "serve":
        from aiohttp import web

        from .api import create_app

        web.run_app(create_app(db_path, schema), host=args.host, port=args.port)
        return 0

    with FieldVaultStore(db_path) as store:
        if args.command == "export":
            size = export_file(store, schema, args.output)
            print(f"Exported {store.count_documents()} entries ({size} bytes) to {args.output}")
        elif args.command == "import":
            result = import_file(store, schema, args.input)
            print(f"Imported {result['entries']} entries from {args.input}")
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args)
    except (OSError, ValueError, MigrationError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
