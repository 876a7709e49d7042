"""Symbol tree builder: provider symbols to an ordered, de-duplicated outline."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from viewsync import config
from viewsync.outline.symbols import CONTAINER_KINDS, DocumentSymbol, Range, icon_class

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class OutlineNode:
    """A node of the materialized outline tree.

    ``range`` is the selection range (the symbol's name), ``full_range``
    the whole declaration. ``symbol_path`` always equals the parent's path
    plus ``name``.
    """

    id: str
    name: str
    kind: int
    uri: str
    range: Range
    full_range: Range
    symbol_path: list[str]
    detail: str | None = None
    icon_class: str = ""
    expanded: bool = False
    selected: bool = False
    parent: OutlineNode | None = field(default=None, repr=False)
    children: list[OutlineNode] = field(default_factory=list, repr=False)


@runtime_checkable
class SymbolProvider(Protocol):
    async def provide_symbols(self, document: Any) -> Sequence[DocumentSymbol] | None: ...


# ── Ordering ──


def compare_nodes(a: OutlineNode, b: OutlineNode) -> int:
    """Order by selection-range start; on equal starts the wider node first."""
    start_line = a.range.start.line - b.range.start.line
    if start_line != 0:
        return start_line
    start_char = a.range.start.character - b.range.start.character
    if start_char != 0:
        return start_char
    end_line = b.range.end.line - a.range.end.line
    if end_line != 0:
        return end_line
    return b.range.end.character - a.range.end.character


def insert_node(nodes: list[OutlineNode], node: OutlineNode) -> None:
    """Insert ``node`` before the first sibling that sorts after it."""
    for index, current in enumerate(nodes):
        if compare_nodes(node, current) < 0:
            nodes.insert(index, node)
            return
    nodes.append(node)


def should_expand(kind: int) -> bool:
    return kind in CONTAINER_KINDS


def iter_nodes(roots: Iterable[OutlineNode]) -> Iterator[OutlineNode]:
    """Depth-first, pre-order walk over an outline tree."""
    for node in roots:
        yield node
        yield from iter_nodes(node.children)


def find_node(roots: Iterable[OutlineNode], symbol_path: Sequence[str]) -> OutlineNode | None:
    level = list(roots)
    found: OutlineNode | None = None
    for name in symbol_path:
        found = next((n for n in level if n.name == name), None)
        if found is None:
            return None
        level = found.children
    return found


# ── Cancellation ──


class CancellationToken:
    """Snapshot of a builder generation; cancelled once a newer build starts."""

    def __init__(self, builder: SymbolTreeBuilder, generation: int) -> None:
        self._builder = builder
        self._generation = generation

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_cancelled(self) -> bool:
        return self._builder.generation != self._generation


# ── Builder ──


class SymbolTreeBuilder:
    """Builds outline trees; each build is rebuilt wholesale, never patched."""

    def __init__(self, scope: str | None = None) -> None:
        self._scope = scope if scope is not None else config.OUTLINE_ID_SCOPE
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> CancellationToken:
        """Start a new build generation, invalidating every earlier token."""
        self._generation += 1
        return CancellationToken(self, self._generation)

    def cancel(self) -> None:
        """Invalidate the in-flight build without starting a new one."""
        self._generation += 1

    def build(
        self,
        document_id: str,
        provider_results: Iterable[Sequence[DocumentSymbol] | None],
    ) -> list[OutlineNode]:
        """Convert provider results into a sorted outline.

        Id counters are shared by the whole build, so two symbols with the
        same name anywhere in the document get distinct ids.
        """
        roots: list[OutlineNode] = []
        ids: dict[str, int] = {}
        for symbols in provider_results:
            for symbol in symbols or ():
                insert_node(roots, self._create_node(document_id, symbol, ids, [], None))
        return roots

    async def build_from_providers(
        self,
        document_id: str,
        document: Any,
        providers: Sequence[SymbolProvider],
        token: CancellationToken | None = None,
    ) -> list[OutlineNode]:
        """Query every provider and build the outline.

        A failing provider contributes nothing. Returns an empty list as
        soon as ``token`` is cancelled; callers check the token again before
        publishing.
        """
        if token is None:
            token = self.begin()
        results: list[Sequence[DocumentSymbol]] = []
        for provider in providers:
            if token.is_cancelled:
                return []
            try:
                symbols = await provider.provide_symbols(document)
            except Exception:
                logger.exception("Error collecting symbols from provider %r", provider)
                continue
            if token.is_cancelled:
                logger.debug("Outline build %d superseded", token.generation)
                return []
            results.append(symbols or [])
        roots = self.build(document_id, results)
        logger.debug(
            "Built outline for %s: %d root(s) from %d provider(s)",
            document_id, len(roots), len(results),
        )
        return roots

    def _create_node(
        self,
        document_id: str,
        symbol: DocumentSymbol,
        ids: dict[str, int],
        parent_path: list[str],
        parent: OutlineNode | None,
    ) -> OutlineNode:
        symbol_path = [*parent_path, symbol.name]
        node = OutlineNode(
            id=self._create_id(symbol.name, ids),
            name=symbol.name,
            kind=symbol.kind,
            uri=document_id,
            range=symbol.selection_range,
            full_range=symbol.range,
            symbol_path=symbol_path,
            detail=symbol.detail or None,
            icon_class=icon_class(symbol.kind),
            expanded=should_expand(symbol.kind),
            parent=parent,
        )
        for child in symbol.children:
            insert_node(
                node.children,
                self._create_node(document_id, child, ids, symbol_path, node),
            )
        return node

    def _create_id(self, name: str, ids: dict[str, int]) -> str:
        counter = ids.get(name)
        index = counter + 1 if counter is not None else 0
        ids[name] = index
        return f"{self._scope}_{name}_{index}"
