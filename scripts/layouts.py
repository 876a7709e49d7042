#!/usr/bin/env python3
"""CLI: Inspect, migrate and delete saved diagram layouts in the SQLite store."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from viewsync import config
from viewsync.storage.kv_store import SqliteKeyValueStore
from viewsync.storage.layout_store import LayoutStore
from viewsync.storage.models import record_identity


def _format_timestamp(ms: object) -> str:
    if not isinstance(ms, (int, float)):
        return "?"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


async def _list(kv: SqliteKeyValueStore, store: LayoutStore, db_path: Path) -> int:
    keys = kv.keys(store.prefix)
    if not keys:
        print("No saved layouts.")
        return 0
    for key in keys:
        raw = await kv.get(key)
        if not isinstance(raw, dict):
            print(f"  {key}  <not an object>")
            continue
        elements = raw.get("elements") or {}
        print(
            f"  v{raw.get('version', '?')}  {len(elements):4d} element(s)  "
            f"{_format_timestamp(raw.get('timestamp'))}  {record_identity(raw) or '<no document key>'}"
        )
    print(f"\n{len(keys)} layout(s) in {db_path}")
    return 0


async def _show(store: LayoutStore, document: str) -> int:
    layout = await store.load_layout(document)
    if layout is None:
        print(f"No usable layout for '{document}'.", file=sys.stderr)
        return 1
    print(json.dumps(layout.to_json(), indent=2, sort_keys=True))
    return 0


async def _delete(store: LayoutStore, document: str) -> int:
    if await store.load_layout(document) is None:
        print(f"No usable layout for '{document}'.", file=sys.stderr)
        return 1
    await store.delete_layout(document)
    print(f"Deleted layout for '{document}'.")
    return 0


async def _migrate(kv: SqliteKeyValueStore, store: LayoutStore) -> int:
    """Load every record so outdated versions are upgraded and written back."""
    migrated = skipped = 0
    for key in kv.keys(store.prefix):
        raw = await kv.get(key)
        document = record_identity(raw) if isinstance(raw, dict) else None
        if document is None:
            skipped += 1
            continue
        before = raw.get("version")
        layout = await store.load_layout(document)
        if layout is None:
            skipped += 1
        elif before != layout.version:
            migrated += 1
    print(f"Migrated: {migrated}, skipped (unusable): {skipped}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Manage saved diagram layouts")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"SQLite database path (default: {config.SQLITE_PATH})",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List all saved layouts")
    show = sub.add_parser("show", help="Print the (migrated) layout of a document")
    show.add_argument("document", help="Document URI")
    delete = sub.add_parser("delete", help="Delete the layout of a document")
    delete.add_argument("document", help="Document URI")
    sub.add_parser("migrate", help="Upgrade every stored layout to the current version")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    db_path = args.db or config.SQLITE_PATH
    kv = SqliteKeyValueStore(db_path)
    kv.init_db()
    store = LayoutStore(kv)
    try:
        if args.command == "list":
            return asyncio.run(_list(kv, store, db_path))
        if args.command == "show":
            return asyncio.run(_show(store, args.document))
        if args.command == "delete":
            return asyncio.run(_delete(store, args.document))
        return asyncio.run(_migrate(kv, store))
    finally:
        kv.close()


if __name__ == "__main__":
    sys.exit(main())
