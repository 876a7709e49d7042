"""Tests for the SQLite key/value store."""

import asyncio

from viewsync.storage.kv_store import SqliteKeyValueStore


class TestSqliteKeyValueStore:
    def test_missing_key(self, kv):
        assert asyncio.run(kv.get("nope")) is None

    def test_set_and_get_json(self, kv):
        value = {"version": 3, "elements": {"a": {"position": {"x": 1.5, "y": 2}}}}
        asyncio.run(kv.set("k", value))
        assert asyncio.run(kv.get("k")) == value

    def test_overwrite(self, kv):
        asyncio.run(kv.set("k", {"n": 1}))
        asyncio.run(kv.set("k", {"n": 2}))
        assert asyncio.run(kv.get("k")) == {"n": 2}
        assert kv.count() == 1

    def test_set_none_deletes(self, kv):
        asyncio.run(kv.set("k", [1, 2]))
        asyncio.run(kv.set("k", None))
        assert asyncio.run(kv.get("k")) is None
        assert kv.count() == 0

    def test_keys_by_prefix(self, kv):
        for key in ["layout:b", "layout:a", "other:c"]:
            asyncio.run(kv.set(key, 1))
        assert kv.keys("layout:") == ["layout:a", "layout:b"]
        assert kv.keys() == ["layout:a", "layout:b", "other:c"]

    def test_keys_prefix_is_literal(self, kv):
        asyncio.run(kv.set("a_b:1", 1))
        asyncio.run(kv.set("axb:2", 1))
        asyncio.run(kv.set("a%b:3", 1))
        assert kv.keys("a_b") == ["a_b:1"]
        assert kv.keys("a%") == ["a%b:3"]

    def test_updated_at(self, kv):
        assert kv.get_updated_at("k") is None
        asyncio.run(kv.set("k", True))
        assert kv.get_updated_at("k") is not None

    def test_init_db_idempotent(self, kv):
        asyncio.run(kv.set("k", 1))
        kv.init_db()
        assert asyncio.run(kv.get("k")) == 1

    def test_creates_parent_dirs_and_persists(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "kv.db"
        store = SqliteKeyValueStore(db_path)
        store.init_db()
        asyncio.run(store.set("k", {"a": 1}))
        store.close()

        reopened = SqliteKeyValueStore(db_path)
        assert asyncio.run(reopened.get("k")) == {"a": 1}
        reopened.close()
