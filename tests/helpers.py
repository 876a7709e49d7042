"""Shared test helpers: symbol factories and fake collaborators."""

import asyncio

from viewsync.outline.symbols import DocumentSymbol, Range, SymbolKind

DOC = "file:///workspace/orders.ecml"


def rng(start_line: int, start_char: int, end_line: int, end_char: int) -> Range:
    return Range.of(start_line, start_char, end_line, end_char)


def sym(
    name: str,
    full: Range,
    kind: int = SymbolKind.CLASS,
    selection: Range | None = None,
    children=(),
    detail: str | None = None,
) -> DocumentSymbol:
    """DocumentSymbol whose selection range defaults to its full range."""
    return DocumentSymbol(
        name=name,
        kind=kind,
        range=full,
        selection_range=selection or full,
        detail=detail,
        children=list(children),
    )


class StaticProvider:
    def __init__(self, symbols):
        self.symbols = symbols
        self.calls = 0

    async def provide_symbols(self, document):
        self.calls += 1
        return self.symbols


class FailingProvider:
    async def provide_symbols(self, document):
        raise RuntimeError("language server crashed")


class GatedProvider:
    """Blocks every call until ``gate`` is set; call n returns a root named 'v{n}'."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.calls = 0

    async def provide_symbols(self, document):
        self.calls += 1
        n = self.calls
        await self.gate.wait()
        return [sym(f"v{n}", rng(0, 0, 1, 0))]


class RecordingRevealer:
    """Synchronous reveal capability that records calls, optionally failing."""

    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def reveal(self, document_id, range, mode):
        self.calls.append((document_id, range, mode))
        if self.fail:
            raise OSError("editor could not be opened")
