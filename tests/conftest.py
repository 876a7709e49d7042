"""Shared fixtures: a mapper with a small registered document, SQLite-backed stores."""

import pytest

from viewsync.mapping.mapper import ElementSymbolMapper, ElementSymbolMapping
from viewsync.outline.symbols import SymbolKind
from viewsync.storage.kv_store import SqliteKeyValueStore
from viewsync.storage.layout_store import LayoutStore

from tests.helpers import DOC, rng


@pytest.fixture
def kv(tmp_path):
    """Per-test key/value store on a fresh SQLite file."""
    store = SqliteKeyValueStore(tmp_path / "test.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def layout_store(kv):
    return LayoutStore(kv, debounce_ms=20)


@pytest.fixture
def order_mappings():
    return [
        ElementSymbolMapping("node-Entity-Order", ["Order"], rng(0, 0, 20, 1), SymbolKind.CLASS),
        ElementSymbolMapping("node-Field-id", ["Order", "id"], rng(2, 2, 2, 12), SymbolKind.FIELD),
        ElementSymbolMapping("node-Field-total", ["Order", "total"], rng(3, 2, 3, 20), SymbolKind.FIELD),
    ]


@pytest.fixture
def mapper(order_mappings):
    """Mapper with the Order document already registered."""
    m = ElementSymbolMapper()
    m.register_mappings(DOC, order_mappings)
    return m
