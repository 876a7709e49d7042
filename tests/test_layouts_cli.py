"""Tests for the layouts maintenance CLI (scripts/layouts.py)."""

import asyncio
import importlib.util
import json
from pathlib import Path

import pytest

from viewsync.storage.kv_store import SqliteKeyValueStore
from viewsync.storage.layout_store import LayoutStore

from tests.helpers import DOC

OTHER = "file:///workspace/other.ecml"
SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "layouts.py"


@pytest.fixture(scope="module")
def cli():
    module_spec = importlib.util.spec_from_file_location("layouts_cli", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture
def db_path(tmp_path):
    """Database holding one v1 layout and one unsupported v9 layout."""
    path = tmp_path / "cli.db"
    kv = SqliteKeyValueStore(path)
    kv.init_db()
    store = LayoutStore(kv)
    asyncio.run(kv.set(store.storage_key(DOC), {
        "version": 1, "uri": DOC, "timestamp": 1700000000000,
        "elements": {"node-Entity-Order": {"position": {"x": 10, "y": 20}}},
    }))
    asyncio.run(kv.set(store.storage_key(OTHER), {
        "version": 9, "documentKey": OTHER, "timestamp": 1, "elements": {},
    }))
    kv.close()
    return path


class TestLayoutsCli:
    def test_list(self, cli, db_path, capsys):
        assert cli.main(["--db", str(db_path), "list"]) == 0
        out = capsys.readouterr().out
        assert DOC in out
        assert OTHER in out
        assert "v1" in out
        assert "2 layout(s)" in out

    def test_list_empty(self, cli, tmp_path, capsys):
        assert cli.main(["--db", str(tmp_path / "empty.db"), "list"]) == 0
        assert "No saved layouts." in capsys.readouterr().out

    def test_show_migrates(self, cli, db_path, capsys):
        assert cli.main(["--db", str(db_path), "show", DOC]) == 0
        shown = json.loads(capsys.readouterr().out)
        assert shown["version"] == 3
        assert shown["documentKey"] == DOC
        assert shown["elements"]["node-Entity-Order"]["position"] == {"x": 10.0, "y": 20.0}

    def test_show_unusable(self, cli, db_path, capsys):
        assert cli.main(["--db", str(db_path), "show", OTHER]) == 1
        assert "No usable layout" in capsys.readouterr().err

    def test_migrate(self, cli, db_path, capsys):
        assert cli.main(["--db", str(db_path), "migrate"]) == 0
        assert "Migrated: 1, skipped (unusable): 1" in capsys.readouterr().out

        assert cli.main(["--db", str(db_path), "migrate"]) == 0
        assert "Migrated: 0, skipped (unusable): 1" in capsys.readouterr().out

    def test_delete(self, cli, db_path, capsys):
        assert cli.main(["--db", str(db_path), "delete", DOC]) == 0
        assert "Deleted layout" in capsys.readouterr().out
        assert cli.main(["--db", str(db_path), "show", DOC]) == 1

    def test_command_required(self, cli, db_path):
        with pytest.raises(SystemExit):
            cli.main(["--db", str(db_path)])
