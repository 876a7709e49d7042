"""Selection sync coordinator: routes selection between outline, diagram and text editor.

A selection change enters tagged with its origin and is fanned out to the
other views according to ``SyncConfig``. A single in-progress flag guards
the dispatch: a selection change raised while another one is being
dispatched (typically a view echoing the selection it was just given) is
dropped, which breaks outline -> diagram -> outline cycles.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from viewsync import config
from viewsync.debounce import Debouncer
from viewsync.mapping.mapper import ElementSymbolMapper, ElementSymbolMapping
from viewsync.outline.symbols import Range
from viewsync.sync.events import Disposable, Emitter

logger = logging.getLogger(__name__)


class SelectionSource(str, Enum):
    OUTLINE = "outline"
    DIAGRAM = "diagram"
    TEXT_EDITOR = "textEditor"


class RevealMode(str, Enum):
    CENTER = "center"
    CENTER_IF_OUTSIDE_VIEWPORT = "centerIfOutsideViewport"


class EditorRevealer(Protocol):
    """Opens/reveals a range in the text editor; may be sync or async."""

    def reveal(self, document_id: str, range: Range, mode: RevealMode) -> Any: ...


@dataclass(frozen=True)
class SyncConfig:
    sync_outline_to_diagram: bool = True
    sync_outline_to_text_editor: bool = True
    sync_diagram_to_outline: bool = True
    # Cursor-driven sync fires on every caret move, so it is opt-in
    sync_text_editor_to_outline: bool = False
    text_editor_sync_debounce_ms: int = config.TEXT_EDITOR_SYNC_DEBOUNCE_MS


# ── Events ──


@dataclass
class OutlineSelectionEvent:
    selected_symbol_paths: list[list[str]]
    source: SelectionSource
    element_ids: list[str] = field(default_factory=list)


@dataclass
class DiagramSelectionRequest:
    document_id: str
    element_ids: list[str]


@dataclass
class NavigateToSymbolEvent:
    document_id: str
    symbol_path: list[str]
    range: Range
    reveal_in_diagram: bool = False
    reveal_in_text_editor: bool = True
    reveal_in_outline: bool = False


@dataclass
class SymbolLookupResult:
    found: bool
    mapping: ElementSymbolMapping | None = None
    error: str | None = None


# ── Coordinator ──


class SelectionSyncCoordinator:
    def __init__(
        self,
        mapper: ElementSymbolMapper | None = None,
        revealer: EditorRevealer | None = None,
        sync_config: SyncConfig | None = None,
    ) -> None:
        self.mapper = mapper or ElementSymbolMapper()
        self._revealer = revealer
        self._config = sync_config or SyncConfig()
        self._syncing = False
        self._text_debouncer = Debouncer(self._config.text_editor_sync_debounce_ms, name="text-editor-sync")
        self._reveal_tasks: set[asyncio.Task] = set()

        self._on_outline_selection: Emitter[OutlineSelectionEvent] = Emitter("outline-selection")
        self._on_navigate_to_symbol: Emitter[NavigateToSymbolEvent] = Emitter("navigate-to-symbol")
        self._on_diagram_selection_request: Emitter[DiagramSelectionRequest] = Emitter(
            "diagram-selection-request"
        )

    # ── Configuration ──

    def get_config(self) -> SyncConfig:
        return self._config

    def set_config(self, **changes: Any) -> SyncConfig:
        self._config = dataclasses.replace(self._config, **changes)
        self._text_debouncer.delay_ms = self._config.text_editor_sync_debounce_ms
        return self._config

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    # ── Mapping passthrough ──

    def register_mappings(self, document_id: str, mappings: Sequence[ElementSymbolMapping]) -> None:
        self.mapper.register_mappings(document_id, mappings)

    def clear_mappings(self, document_id: str) -> None:
        self.mapper.clear_mappings(document_id)

    def lookup_symbol(self, document_id: str, element_id: str) -> SymbolLookupResult:
        mapping = self.mapper.lookup_symbol(document_id, element_id)
        if mapping is None:
            return SymbolLookupResult(found=False, error=f"No mapping found for element: {element_id}")
        return SymbolLookupResult(found=True, mapping=mapping)

    def lookup_element(self, document_id: str, symbol_path: Sequence[str]) -> str | None:
        return self.mapper.lookup_element(document_id, symbol_path)

    def find_element_at_position(self, document_id: str, line: int, character: int) -> str | None:
        return self.mapper.find_element_at_position(document_id, line, character)

    # ── Subscriptions ──

    def on_outline_selection(self, callback: Callable[[OutlineSelectionEvent], None]) -> Disposable:
        return self._on_outline_selection.subscribe(callback)

    def on_navigate_to_symbol(self, callback: Callable[[NavigateToSymbolEvent], None]) -> Disposable:
        return self._on_navigate_to_symbol.subscribe(callback)

    def on_diagram_selection_request(
        self, callback: Callable[[DiagramSelectionRequest], None]
    ) -> Disposable:
        return self._on_diagram_selection_request.subscribe(callback)

    # ── Dispatch ──

    def handle_selection_change(
        self,
        document_id: str,
        element_ids: Sequence[str],
        source: SelectionSource | str,
    ) -> None:
        """Propagate a selection from ``source`` to the other views.

        No-op when called while another selection change is being dispatched.
        """
        try:
            source = SelectionSource(source)
        except ValueError:
            logger.warning("Ignoring selection from unknown source %r for %s", source, document_id)
            return
        if self._syncing:
            logger.debug("Ignoring re-entrant %s selection for %s", source.value, document_id)
            return

        self._syncing = True
        try:
            if source is SelectionSource.OUTLINE:
                self._handle_outline_selection(document_id, list(element_ids))
            elif source is SelectionSource.DIAGRAM:
                self._handle_diagram_selection(document_id, list(element_ids))
            else:
                self._handle_text_editor_selection(document_id, list(element_ids))
        finally:
            self._syncing = False

    def _resolve_symbol_paths(self, document_id: str, element_ids: list[str]) -> list[list[str]]:
        """Symbol paths of the mapped elements; unmapped ones are skipped."""
        paths: list[list[str]] = []
        for element_id in element_ids:
            mapping = self.mapper.lookup_symbol(document_id, element_id)
            if mapping is not None:
                paths.append(list(mapping.symbol_path))
        return paths

    def _handle_outline_selection(self, document_id: str, element_ids: list[str]) -> None:
        symbol_paths = self._resolve_symbol_paths(document_id, element_ids)

        if self._config.sync_outline_to_diagram:
            self._on_diagram_selection_request.fire(
                DiagramSelectionRequest(document_id=document_id, element_ids=list(element_ids))
            )

        # Multi-selection navigates to the first element only
        if self._config.sync_outline_to_text_editor and element_ids:
            mapping = self.mapper.lookup_symbol(document_id, element_ids[0])
            if mapping is not None:
                self._navigate_to(document_id, mapping)

        self._on_outline_selection.fire(OutlineSelectionEvent(
            selected_symbol_paths=symbol_paths,
            source=SelectionSource.OUTLINE,
            element_ids=list(element_ids),
        ))

    def _handle_diagram_selection(self, document_id: str, element_ids: list[str]) -> None:
        if not self._config.sync_diagram_to_outline:
            return
        self._on_outline_selection.fire(OutlineSelectionEvent(
            selected_symbol_paths=self._resolve_symbol_paths(document_id, element_ids),
            source=SelectionSource.DIAGRAM,
            element_ids=list(element_ids),
        ))

    def _handle_text_editor_selection(self, document_id: str, element_ids: list[str]) -> None:
        if not self._config.sync_text_editor_to_outline:
            return
        try:
            self._text_debouncer.schedule(
                document_id, self._emit_text_editor_selection, document_id, element_ids
            )
        except RuntimeError:
            # No running event loop to debounce on
            logger.debug("No event loop, emitting text editor selection immediately")
            self._fire_text_editor_selection(document_id, element_ids)

    def _emit_text_editor_selection(self, document_id: str, element_ids: list[str]) -> None:
        if self._syncing:
            return
        self._syncing = True
        try:
            self._fire_text_editor_selection(document_id, element_ids)
        finally:
            self._syncing = False

    def _fire_text_editor_selection(self, document_id: str, element_ids: list[str]) -> None:
        # Resolved when the timer fires, against whatever mappings are current then
        self._on_outline_selection.fire(OutlineSelectionEvent(
            selected_symbol_paths=self._resolve_symbol_paths(document_id, element_ids),
            source=SelectionSource.TEXT_EDITOR,
            element_ids=list(element_ids),
        ))

    # ── Navigation ──

    def _navigate_to(self, document_id: str, mapping: ElementSymbolMapping) -> None:
        self._on_navigate_to_symbol.fire(NavigateToSymbolEvent(
            document_id=document_id,
            symbol_path=list(mapping.symbol_path),
            range=mapping.range,
        ))
        if self._revealer is None:
            return
        coro = self._reveal(document_id, mapping.range, RevealMode.CENTER_IF_OUTSIDE_VIEWPORT)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return
        task = loop.create_task(coro)
        self._reveal_tasks.add(task)
        task.add_done_callback(self._reveal_tasks.discard)

    async def _reveal(self, document_id: str, range: Range, mode: RevealMode) -> None:
        try:
            result = self._revealer.reveal(document_id, range, mode)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Failed to navigate to %s in %s", range.to_dict(), document_id, exc_info=True)

    async def drain(self) -> None:
        """Wait for in-flight reveals and fired text-editor callbacks."""
        while self._reveal_tasks:
            await asyncio.gather(*list(self._reveal_tasks), return_exceptions=True)
        await self._text_debouncer.drain()

    def cancel_pending(self, document_id: str) -> bool:
        """Drop a debounced text-editor selection not yet emitted for the document."""
        return self._text_debouncer.cancel(document_id)

    def dispose(self) -> None:
        self._text_debouncer.cancel_all()
        for task in list(self._reveal_tasks):
            task.cancel()
        self._on_outline_selection.clear()
        self._on_navigate_to_symbol.clear()
        self._on_diagram_selection_request.clear()
