"""Symbol data supplied by language providers: positions, ranges, kinds."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


@dataclass(frozen=True)
class Position:
    """0-based line/character position."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    @classmethod
    def of(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> Range:
        return cls(Position(start_line, start_char), Position(end_line, end_char))

    def contains(self, line: int, character: int) -> bool:
        """Inclusive containment; character bounds only apply on the edge lines."""
        if line < self.start.line or line > self.end.line:
            return False
        if line == self.start.line and character < self.start.character:
            return False
        if line == self.end.line and character > self.end.character:
            return False
        return True

    def size(self) -> int:
        """Approximate extent used to pick the most specific range.

        One line counts as 1000 characters, so multi-line ranges always
        outweigh single-line ones of realistic width.
        """
        lines = self.end.line - self.start.line
        chars = self.end.character - self.start.character
        return lines * 1000 + chars

    def to_dict(self) -> dict:
        return {
            "start": {"line": self.start.line, "character": self.start.character},
            "end": {"line": self.end.line, "character": self.end.character},
        }


def from_one_based(start_line: int, start_col: int, end_line: int, end_col: int) -> Range:
    """Convert a 1-based editor range (line/column numbers) to a 0-based Range."""
    return Range.of(start_line - 1, start_col - 1, end_line - 1, end_col - 1)


class SymbolKind(IntEnum):
    FILE = 1
    MODULE = 2
    NAMESPACE = 3
    PACKAGE = 4
    CLASS = 5
    METHOD = 6
    PROPERTY = 7
    FIELD = 8
    CONSTRUCTOR = 9
    ENUM = 10
    INTERFACE = 11
    FUNCTION = 12
    VARIABLE = 13
    CONSTANT = 14
    STRING = 15
    NUMBER = 16
    BOOLEAN = 17
    ARRAY = 18
    OBJECT = 19
    KEY = 20
    NULL = 21
    ENUM_MEMBER = 22
    STRUCT = 23
    EVENT = 24
    OPERATOR = 25
    TYPE_PARAMETER = 26


# Kinds whose outline nodes start expanded
CONTAINER_KINDS = frozenset({
    SymbolKind.CLASS,
    SymbolKind.ENUM,
    SymbolKind.FILE,
    SymbolKind.INTERFACE,
    SymbolKind.MODULE,
    SymbolKind.NAMESPACE,
    SymbolKind.OBJECT,
    SymbolKind.PACKAGE,
    SymbolKind.STRUCT,
})


def icon_class(kind: int) -> str:
    """Lower-cased kind name, e.g. 'enummember' for ENUM_MEMBER."""
    try:
        return SymbolKind(kind).name.replace("_", "").lower()
    except ValueError:
        return "unknown"


@dataclass
class DocumentSymbol:
    """One hierarchical symbol as returned by a symbol provider."""

    name: str
    kind: int
    range: Range
    selection_range: Range
    detail: str | None = None
    children: list[DocumentSymbol] = field(default_factory=list)
