"""Per-document wiring of outline, mapper, selection sync and layout store."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable, Mapping, Sequence
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any

from viewsync.mapping.mapper import (
    ElementSymbolMapping,
    build_mappings_from_ranges,
    build_mappings_from_symbols,
)
from viewsync.outline.builder import OutlineNode
from viewsync.outline.publisher import OutlinePublisher
from viewsync.outline.symbols import DocumentSymbol, Range
from viewsync.storage.layout_store import ElementsInput, LayoutStore
from viewsync.storage.models import LayoutRecord, ViewState
from viewsync.sync.coordinator import EditorRevealer, RevealMode, SelectionSource, SelectionSyncCoordinator

logger = logging.getLogger(__name__)


@dataclass
class DiagramModel:
    """Current diagram elements; ``source_ranges`` is empty when the model has none."""

    element_ids: list[str]
    source_ranges: dict[str, Range] = field(default_factory=dict)


class DocumentSession:
    """Lifecycle of one open document across the three views.

    Mappings are rebuilt from each new outline and diagram model, the saved
    layout is read once on open and written back as the user edits, and
    everything document-scoped is torn down on ``close()``.
    """

    def __init__(
        self,
        document_id: str,
        coordinator: SelectionSyncCoordinator,
        layout_store: LayoutStore | None = None,
        revealer: EditorRevealer | None = None,
        publisher: OutlinePublisher | None = None,
    ) -> None:
        self.document_id = document_id
        self.coordinator = coordinator
        self.layout_store = layout_store
        self.publisher = publisher
        self._revealer = revealer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Mappings ──

    def refresh_mappings(
        self, symbols: Sequence[DocumentSymbol], diagram: DiagramModel
    ) -> list[ElementSymbolMapping]:
        """Rebuild and register mappings: by range when available, else by name."""
        if diagram.source_ranges:
            mappings = build_mappings_from_ranges(symbols, diagram.source_ranges)
            strategy = "ranges"
        else:
            mappings = build_mappings_from_symbols(symbols, diagram.element_ids)
            strategy = "names"
        self.coordinator.register_mappings(self.document_id, mappings)
        logger.debug(
            "Mapped %d/%d element(s) of %s by %s",
            len(mappings), len(diagram.element_ids), self.document_id, strategy,
        )
        return mappings

    # ── Outline interaction ──

    async def handle_outline_select(self, node: OutlineNode) -> None:
        """Single click: select the mapped element and reveal the symbol."""
        element_id = self.coordinator.lookup_element(self.document_id, node.symbol_path)
        if element_id is not None:
            self.coordinator.handle_selection_change(
                self.document_id, [element_id], SelectionSource.OUTLINE
            )
            if self.coordinator.get_config().sync_outline_to_text_editor:
                # The coordinator already navigates to the mapped range
                return
        await self._reveal(node.range, RevealMode.CENTER_IF_OUTSIDE_VIEWPORT)

    async def handle_outline_open(self, node: OutlineNode) -> None:
        """Double click: reveal the symbol centered."""
        await self._reveal(node.range, RevealMode.CENTER)

    def handle_cursor_move(self, line: int, character: int) -> None:
        element_id = self.coordinator.find_element_at_position(self.document_id, line, character)
        if element_id is not None:
            self.coordinator.handle_selection_change(
                self.document_id, [element_id], SelectionSource.TEXT_EDITOR
            )

    async def _reveal(self, range: Range, mode: RevealMode) -> None:
        if self._revealer is None:
            return
        suspend = self.publisher.suspend_updates() if self.publisher else nullcontext()
        with suspend:
            try:
                result = self._revealer.reveal(self.document_id, range, mode)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("Failed to reveal %s in %s", range.to_dict(), self.document_id, exc_info=True)

    # ── Layout ──

    async def restore_layout(
        self, current_element_ids: Iterable[str]
    ) -> tuple[LayoutRecord | None, set[str]]:
        """Saved layout restricted to current elements, plus ids needing placement."""
        ids = set(current_element_ids)
        if self.layout_store is None:
            return None, ids
        layout = await self.layout_store.load_layout(self.document_id)
        if layout is not None:
            layout = self.layout_store.filter_stale_entries(layout, ids)
        return layout, self.layout_store.get_new_element_ids(layout, ids)

    async def save_layout(
        self,
        elements: ElementsInput,
        id_map: Mapping[str, str] | None = None,
        fingerprints: Mapping[str, Any] | None = None,
        view_state: ViewState | Mapping[str, Any] | None = None,
        immediate: bool = False,
    ) -> None:
        if self.layout_store is None or self._closed:
            return
        if immediate:
            await self.layout_store.save_layout(
                self.document_id, elements, id_map, fingerprints, view_state
            )
        else:
            self.layout_store.save_layout_debounced(
                self.document_id, elements, id_map, fingerprints, view_state
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.publisher is not None:
            self.publisher.dispose()
        if self.layout_store is not None:
            self.layout_store.cancel_pending(self.document_id)
        self.coordinator.cancel_pending(self.document_id)
        self.coordinator.clear_mappings(self.document_id)
        logger.debug("Closed session for %s", self.document_id)
