"""Tests for symbol ranges and the outline tree builder."""

from __future__ import annotations

import asyncio

import pytest

from viewsync.outline.builder import (
    SymbolTreeBuilder,
    compare_nodes,
    find_node,
    iter_nodes,
    should_expand,
)
from viewsync.outline.symbols import Range, SymbolKind, from_one_based, icon_class

from tests.helpers import DOC, FailingProvider, GatedProvider, StaticProvider, rng, sym


@pytest.fixture
def builder() -> SymbolTreeBuilder:
    return SymbolTreeBuilder(scope="outline")


def _order_symbols():
    return [
        sym("Order", rng(0, 0, 50, 1), selection=rng(0, 7, 0, 12), children=[
            sym("total", rng(6, 2, 6, 20), kind=SymbolKind.FIELD),
            sym("id", rng(5, 2, 5, 10), kind=SymbolKind.FIELD),
        ]),
    ]


# ── Range ──


class TestRange:
    def test_contains_inside_and_edges(self):
        r = rng(2, 5, 4, 3)
        assert r.contains(2, 5)
        assert r.contains(3, 0)
        assert r.contains(3, 999)
        assert r.contains(4, 3)

    def test_contains_outside(self):
        r = rng(2, 5, 4, 3)
        assert not r.contains(2, 4)
        assert not r.contains(4, 4)
        assert not r.contains(1, 9)
        assert not r.contains(5, 0)

    def test_size_weights_lines(self):
        assert rng(2, 5, 4, 3).size() == 1998
        assert rng(0, 0, 0, 40).size() == 40

    def test_from_one_based(self):
        assert from_one_based(1, 1, 2, 5) == Range.of(0, 0, 1, 4)

    def test_icon_class(self):
        assert icon_class(SymbolKind.CLASS) == "class"
        assert icon_class(SymbolKind.ENUM_MEMBER) == "enummember"
        assert icon_class(99) == "unknown"


# ── Tree construction ──


class TestBuild:
    def test_siblings_sorted_by_start(self, builder):
        roots = builder.build(DOC, [_order_symbols()])
        assert [c.name for c in roots[0].children] == ["id", "total"]

    def test_container_sorts_before_contents_at_same_start(self, builder):
        symbols = [
            sym("Later", rng(5, 0, 5, 5)),
            sym("Inner", rng(1, 0, 1, 3)),
            sym("Same", rng(1, 4, 1, 9)),
            sym("Outer", rng(1, 0, 3, 0)),
        ]
        roots = builder.build(DOC, [symbols])
        assert [n.name for n in roots] == ["Outer", "Inner", "Same", "Later"]

    def test_sibling_order_non_decreasing_everywhere(self, builder):
        symbols = [
            sym("B", rng(10, 0, 20, 0), children=[
                sym("b2", rng(15, 0, 15, 4)),
                sym("b1", rng(11, 0, 11, 4)),
            ]),
            sym("A", rng(0, 0, 9, 0)),
        ]
        roots = builder.build(DOC, [symbols])
        for level in [roots] + [n.children for n in iter_nodes(roots)]:
            for a, b in zip(level, level[1:]):
                assert compare_nodes(a, b) <= 0

    def test_duplicate_names_get_unique_ids(self, builder):
        symbols = [
            sym("Item", rng(0, 0, 5, 0), children=[sym("Item", rng(1, 0, 1, 4))]),
            sym("Item", rng(10, 0, 12, 0)),
        ]
        roots = builder.build(DOC, [symbols])
        assert roots[0].id == "outline_Item_0"
        assert roots[0].children[0].id == "outline_Item_1"
        assert roots[1].id == "outline_Item_2"

    def test_ids_unique_across_providers(self, builder):
        roots = builder.build(DOC, [[sym("A", rng(0, 0, 1, 0))], [sym("A", rng(2, 0, 3, 0))]])
        assert len({n.id for n in roots}) == 2

    def test_scope_prefix(self):
        roots = SymbolTreeBuilder(scope="diagram").build(DOC, [[sym("A", rng(0, 0, 1, 0))]])
        assert roots[0].id == "diagram_A_0"

    def test_symbol_path_and_parent(self, builder):
        roots = builder.build(DOC, [_order_symbols()])
        order = roots[0]
        assert order.symbol_path == ["Order"]
        assert order.parent is None
        for child in order.children:
            assert child.symbol_path == ["Order", child.name]
            assert child.parent is order

    def test_ranges_and_metadata(self, builder):
        symbols = [sym("Order", rng(0, 0, 50, 1), selection=rng(0, 7, 0, 12), detail="entity")]
        node = builder.build(DOC, [symbols])[0]
        assert node.range == rng(0, 7, 0, 12)
        assert node.full_range == rng(0, 0, 50, 1)
        assert node.uri == DOC
        assert node.detail == "entity"
        assert node.icon_class == "class"

    def test_empty_detail_becomes_none(self, builder):
        node = builder.build(DOC, [[sym("A", rng(0, 0, 1, 0), detail="")]])[0]
        assert node.detail is None

    def test_default_expansion(self, builder):
        roots = builder.build(DOC, [_order_symbols()])
        assert roots[0].expanded is True
        assert all(c.expanded is False for c in roots[0].children)
        assert should_expand(SymbolKind.MODULE)
        assert should_expand(SymbolKind.STRUCT)
        assert not should_expand(SymbolKind.METHOD)

    def test_none_and_empty_results(self, builder):
        assert builder.build(DOC, [None, []]) == []

    def test_find_node(self, builder):
        roots = builder.build(DOC, [_order_symbols()])
        assert find_node(roots, ["Order", "id"]).name == "id"
        assert find_node(roots, ["Order", "missing"]) is None
        assert find_node(roots, ["Nope"]) is None


# ── Provider queries and cancellation ──


class TestBuildFromProviders:
    def test_failing_provider_is_skipped(self, builder):
        providers = [FailingProvider(), StaticProvider(_order_symbols())]
        roots = asyncio.run(builder.build_from_providers(DOC, "model", providers))
        assert [n.name for n in roots] == ["Order"]

    def test_all_failing_returns_empty_tree(self, builder):
        roots = asyncio.run(builder.build_from_providers(DOC, "model", [FailingProvider()]))
        assert roots == []

    def test_provider_returning_none(self, builder):
        roots = asyncio.run(builder.build_from_providers(DOC, "model", [StaticProvider(None)]))
        assert roots == []

    def test_superseded_build_returns_nothing(self, builder):
        provider = GatedProvider()

        async def run():
            first = builder.begin()
            task = asyncio.create_task(
                builder.build_from_providers(DOC, "model", [provider], first)
            )
            await asyncio.sleep(0)
            second = builder.begin()
            assert first.is_cancelled
            assert not second.is_cancelled
            provider.gate.set()
            return await task

        assert asyncio.run(run()) == []

    def test_cancelled_token_skips_remaining_providers(self, builder):
        later = StaticProvider(_order_symbols())
        token = builder.begin()
        builder.cancel()
        roots = asyncio.run(builder.build_from_providers(DOC, "model", [later], token))
        assert roots == []
        assert later.calls == 0
