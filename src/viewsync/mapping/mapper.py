"""Element-symbol mapper: relates diagram element ids to outline symbol paths.

Two ways to build mappings:

- ``build_mappings_from_ranges``: each element's source range start is
  matched to the smallest symbol range containing it. Precise and
  independent of naming; used whenever the diagram carries source ranges.
- ``build_mappings_from_symbols``: element names (taken from the element
  id) are matched to symbol names exactly, then normalized, then by the
  longest contained substring. Only a fallback; skipped entirely when every
  element id is a UUID.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from viewsync.outline.symbols import DocumentSymbol, Range

logger = logging.getLogger(__name__)

_NODE_EDGE_ID_RE = re.compile(r"^(?:node|edge)-[^-]+-(.+)$")
_TYPED_ID_RE = re.compile(r"^[^-]+-(.+)$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")

SYMBOL_PATH_SEPARATOR = "::"


@dataclass
class ElementSymbolMapping:
    element_id: str
    symbol_path: list[str]
    range: Range
    kind: int
    parent_element_id: str | None = None
    child_element_ids: list[str] | None = None


@dataclass
class _FlatSymbol:
    symbol: DocumentSymbol
    path: list[str] = field(default_factory=list)


# ── Naming policy ──


def extract_name_from_element_id(element_id: str) -> str:
    """'node-Entity-Customer' -> 'Customer', 'type-name' -> 'name', else the id."""
    match = _NODE_EDGE_ID_RE.match(element_id)
    if match:
        return match.group(1)
    match = _TYPED_ID_RE.match(element_id)
    if match:
        return match.group(1)
    return element_id


def normalize_name(name: str) -> str:
    """Strip non-alphanumerics and lowercase: 'Legal Reviewer' -> 'legalreviewer'."""
    return _NON_ALNUM_RE.sub("", name).lower()


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def symbol_path_key(path: Sequence[str]) -> str:
    return SYMBOL_PATH_SEPARATOR.join(path)


def flatten_symbols(symbols: Iterable[DocumentSymbol]) -> list[_FlatSymbol]:
    """Pre-order list of symbols with their parent paths."""
    result: list[_FlatSymbol] = []

    def walk(level: Iterable[DocumentSymbol], parent_path: list[str]) -> None:
        for symbol in level:
            result.append(_FlatSymbol(symbol, parent_path))
            if symbol.children:
                walk(symbol.children, [*parent_path, symbol.name])

    walk(symbols, [])
    return result


# ── Strategy A: range containment ──


def build_mappings_from_ranges(
    symbols: Sequence[DocumentSymbol],
    source_ranges: Mapping[str, Range],
) -> list[ElementSymbolMapping]:
    """Map each element to the smallest symbol containing its start position.

    Equal-size candidates keep the first one found in pre-order. Elements
    with no containing symbol are left unmapped.
    """
    flat = flatten_symbols(symbols)
    mappings: list[ElementSymbolMapping] = []

    for element_id, source_range in source_ranges.items():
        line, character = source_range.start.line, source_range.start.character
        best: _FlatSymbol | None = None
        best_size = 0
        for entry in flat:
            if not entry.symbol.range.contains(line, character):
                continue
            size = entry.symbol.range.size()
            if best is None or size < best_size:
                best, best_size = entry, size
        if best is not None:
            mappings.append(ElementSymbolMapping(
                element_id=element_id,
                symbol_path=[*best.path, best.symbol.name],
                range=best.symbol.range,
                kind=best.symbol.kind,
            ))

    if not mappings and source_ranges:
        sample_id, sample_range = next(iter(source_ranges.items()))
        sample_symbol = flat[0].symbol if flat else None
        logger.warning(
            "Range matching produced 0 mappings: %d source range(s), %d symbol(s), "
            "sample range %s=%s, sample symbol %s",
            len(source_ranges), len(flat), sample_id, sample_range.to_dict(),
            f"{sample_symbol.name}={sample_symbol.range.to_dict()}" if sample_symbol else None,
        )
    return mappings


# ── Strategy B: name matching ──


def build_mappings_from_symbols(
    symbols: Sequence[DocumentSymbol],
    element_ids: Sequence[str],
) -> list[ElementSymbolMapping]:
    """Match symbols to elements by name.

    Per symbol: exact lowercase name, then normalized name, then the longest
    normalized element name contained in the normalized symbol name.
    Returns [] when all element ids are UUIDs; the caller must use
    ``build_mappings_from_ranges`` instead.
    """
    if element_ids and all(is_uuid(eid) for eid in element_ids):
        logger.warning(
            "All %d element ids are UUIDs, skipping name matching; use range matching instead",
            len(element_ids),
        )
        return []

    element_id_set = set(element_ids)
    by_exact: dict[str, str] = {}
    by_normalized: dict[str, str] = {}
    for element_id in element_ids:
        name = extract_name_from_element_id(element_id)
        if not name:
            continue
        by_exact[name.lower()] = element_id
        normalized = normalize_name(name)
        if normalized:
            by_normalized[normalized] = element_id

    mappings: list[ElementSymbolMapping] = []
    for entry in flatten_symbols(symbols):
        symbol = entry.symbol
        normalized_key = normalize_name(symbol.name)
        element_id = by_exact.get(symbol.name.lower()) or by_normalized.get(normalized_key)

        if element_id is None:
            best_len = 0
            for element_name, candidate in by_normalized.items():
                # Longer element names win so generic short names don't shadow specific ones
                if element_name in normalized_key and len(element_name) > best_len:
                    element_id, best_len = candidate, len(element_name)

        if element_id is not None and element_id in element_id_set:
            mappings.append(ElementSymbolMapping(
                element_id=element_id,
                symbol_path=[*entry.path, symbol.name],
                range=symbol.range,
                kind=symbol.kind,
            ))
    return mappings


# ── Registry ──


class ElementSymbolMapper:
    """Per-document mapping tables, replaced wholesale on every registration."""

    def __init__(self) -> None:
        self._by_element: dict[str, dict[str, ElementSymbolMapping]] = {}
        self._by_symbol_path: dict[str, dict[str, str]] = {}

    def register_mappings(self, document_id: str, mappings: Iterable[ElementSymbolMapping]) -> None:
        element_map: dict[str, ElementSymbolMapping] = {}
        symbol_map: dict[str, str] = {}
        for mapping in mappings:
            element_map[mapping.element_id] = mapping
            symbol_map[symbol_path_key(mapping.symbol_path)] = mapping.element_id
        self._by_element[document_id] = element_map
        self._by_symbol_path[document_id] = symbol_map
        logger.debug("Registered %d mapping(s) for %s", len(element_map), document_id)

    def clear_mappings(self, document_id: str) -> None:
        self._by_element.pop(document_id, None)
        self._by_symbol_path.pop(document_id, None)

    def lookup_symbol(self, document_id: str, element_id: str) -> ElementSymbolMapping | None:
        return self._by_element.get(document_id, {}).get(element_id)

    def lookup_element(self, document_id: str, symbol_path: Sequence[str]) -> str | None:
        return self._by_symbol_path.get(document_id, {}).get(symbol_path_key(symbol_path))

    def get_all_mappings(self, document_id: str) -> list[ElementSymbolMapping]:
        return list(self._by_element.get(document_id, {}).values())

    def has_document(self, document_id: str) -> bool:
        return document_id in self._by_element

    def find_element_at_position(self, document_id: str, line: int, character: int) -> str | None:
        """Element whose mapped range is the smallest one containing the position."""
        containing = [
            m for m in self.get_all_mappings(document_id) if m.range.contains(line, character)
        ]
        if not containing:
            return None
        return min(containing, key=lambda m: m.range.size()).element_id
