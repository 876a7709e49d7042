"""Diagram layout persistence keyed by document identity.

Layout is a best-effort enhancement: storage failures are logged and read
as "no layout" or "save skipped", never raised to the diagram.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from viewsync import config
from viewsync.debounce import Debouncer
from viewsync.storage.kv_store import KeyValueStore
from viewsync.storage.models import (
    CURRENT_LAYOUT_VERSION,
    ElementLayout,
    LayoutRecord,
    LayoutVersionError,
    Point,
    ViewState,
    migrate_layout,
    record_identity,
)

logger = logging.getLogger(__name__)

ElementsInput = Mapping[str, ElementLayout | Mapping[str, Any]]


def now_ms() -> int:
    return int(time.time() * 1000)


def document_hash(document_id: str) -> str:
    """32-bit rolling hash (h = h*31 + code unit) of the id, as hex of its magnitude.

    Iterates UTF-16 code units so keys match those written by editor hosts
    that hash JavaScript strings.
    """
    raw = document_id.encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        h = (h * 31 + int.from_bytes(raw[i:i + 2], "little")) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return format(abs(h), "x")


class LayoutStore:
    def __init__(
        self,
        storage: KeyValueStore,
        prefix: str | None = None,
        debounce_ms: int | None = None,
        load_warn_ms: int | None = None,
    ) -> None:
        self._storage = storage
        self._prefix = prefix if prefix is not None else config.LAYOUT_STORAGE_PREFIX
        self._debouncer = Debouncer(
            debounce_ms if debounce_ms is not None else config.LAYOUT_SAVE_DEBOUNCE_MS,
            name="layout-save",
        )
        self._load_warn_ms = load_warn_ms if load_warn_ms is not None else config.LAYOUT_LOAD_WARN_MS

    @property
    def prefix(self) -> str:
        return self._prefix

    def storage_key(self, document_id: str) -> str:
        return f"{self._prefix}{document_hash(document_id)}"

    # ── Load ──

    async def load_layout(self, document_id: str) -> LayoutRecord | None:
        """Load, migrate and validate the saved layout for a document.

        Returns None when nothing is saved, the stored record belongs to a
        different document (hash collision), its version cannot be migrated,
        it fails validation, or storage fails. Rejected records stay on disk
        untouched; successful migrations are written back once.
        """
        t0 = time.perf_counter()
        key = self.storage_key(document_id)
        try:
            raw = await self._storage.get(key)
        except Exception:
            logger.warning("Failed to load layout for %s", document_id, exc_info=True)
            return None
        if not raw:
            return None
        if not isinstance(raw, dict):
            logger.warning("Discarding layout for %s: stored value is not an object", document_id)
            return None
        if record_identity(raw) != document_id:
            logger.warning(
                "Layout under %s belongs to %r, not %r; ignoring",
                key, record_identity(raw), document_id,
            )
            return None

        stored_version = raw.get("version")
        try:
            migrated = migrate_layout(raw)
        except LayoutVersionError as e:
            logger.warning("Discarding incompatible layout for %s: %s", document_id, e)
            return None
        try:
            layout = LayoutRecord.model_validate(migrated)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed layout for %s (%d error(s))", document_id, e.error_count()
            )
            return None

        if stored_version != CURRENT_LAYOUT_VERSION:
            try:
                await self._storage.set(key, layout.to_json())
                logger.info(
                    "Migrated layout for %s from v%s to v%d",
                    document_id, stored_version, CURRENT_LAYOUT_VERSION,
                )
            except Exception:
                logger.warning("Failed to persist migrated layout for %s", document_id, exc_info=True)

        duration_ms = (time.perf_counter() - t0) * 1000
        if duration_ms > self._load_warn_ms:
            logger.warning(
                "Layout load took %.2fms for %d elements (target: <%dms)",
                duration_ms, len(layout.elements), self._load_warn_ms,
            )
        else:
            logger.debug("Loaded layout in %.2fms: %d elements", duration_ms, len(layout.elements))
        return layout

    async def has_layout(self, document_id: str) -> bool:
        layout = await self.load_layout(document_id)
        return layout is not None and len(layout.elements) > 0

    # ── Save / delete ──

    async def save_layout(
        self,
        document_id: str,
        elements: ElementsInput,
        id_map: Mapping[str, str] | None = None,
        fingerprints: Mapping[str, Any] | None = None,
        view_state: ViewState | Mapping[str, Any] | None = None,
    ) -> None:
        """Save immediately as a current-version record."""
        try:
            layout = LayoutRecord(
                version=CURRENT_LAYOUT_VERSION,
                document_key=document_id,
                timestamp=now_ms(),
                elements=dict(elements),
                id_map=dict(id_map) if id_map is not None else None,
                fingerprints=dict(fingerprints) if fingerprints is not None else None,
                view_state=view_state,
            )
            await self._storage.set(self.storage_key(document_id), layout.to_json())
            logger.debug("Saved layout for %s: %d elements", document_id, len(layout.elements))
        except Exception:
            logger.error("Failed to save layout for %s", document_id, exc_info=True)

    def save_layout_debounced(
        self,
        document_id: str,
        elements: ElementsInput,
        id_map: Mapping[str, str] | None = None,
        fingerprints: Mapping[str, Any] | None = None,
        view_state: ViewState | Mapping[str, Any] | None = None,
    ) -> None:
        """Save after a quiet period; supersedes any pending save for the document."""
        args = (document_id, dict(elements), id_map, fingerprints, view_state)
        try:
            self._debouncer.schedule(document_id, self.save_layout, *args)
        except RuntimeError:
            logger.debug("No event loop, saving layout for %s immediately", document_id)
            asyncio.run(self.save_layout(*args))

    def has_pending_save(self, document_id: str) -> bool:
        return self._debouncer.is_pending(document_id)

    def cancel_pending(self, document_id: str) -> bool:
        return self._debouncer.cancel(document_id)

    async def flush(self) -> None:
        """Wait for debounced saves that have already started."""
        await self._debouncer.drain()

    async def delete_layout(self, document_id: str) -> None:
        # A pending debounced save would bring the layout straight back
        self._debouncer.cancel(document_id)
        try:
            await self._storage.set(self.storage_key(document_id), None)
            logger.debug("Deleted layout for %s", document_id)
        except Exception:
            logger.warning("Failed to delete layout for %s", document_id, exc_info=True)

    def dispose(self) -> None:
        self._debouncer.cancel_all()

    # ── Reconciliation with the current diagram ──

    def extract_positions(self, layout: LayoutRecord) -> dict[str, Point]:
        return {element_id: el.position for element_id, el in layout.elements.items()}

    def filter_stale_entries(
        self, layout: LayoutRecord, current_element_ids: Iterable[str]
    ) -> LayoutRecord:
        """Copy of ``layout`` restricted to elements that still exist, re-timestamped."""
        current = set(current_element_ids)
        kept = {eid: el for eid, el in layout.elements.items() if eid in current}
        removed = len(layout.elements) - len(kept)
        if removed:
            logger.debug("Removed %d stale layout entries", removed)
        timestamp = max(now_ms(), layout.timestamp + 1)
        return layout.model_copy(update={"elements": kept, "timestamp": timestamp})

    def merge_layouts(
        self,
        saved: LayoutRecord | None,
        current: Mapping[str, ElementLayout],
        current_element_ids: Iterable[str],
    ) -> dict[str, ElementLayout]:
        """Saved positions of surviving elements, overlaid by ``current``."""
        ids = set(current_element_ids)
        merged: dict[str, ElementLayout] = {}
        if saved is not None:
            for element_id, el in saved.elements.items():
                if element_id in ids:
                    merged[element_id] = el
        merged.update(current)
        return merged

    def get_new_element_ids(
        self, saved: LayoutRecord | None, current_element_ids: Iterable[str]
    ) -> set[str]:
        """Elements needing fresh placement: all of them when nothing is saved."""
        ids = set(current_element_ids)
        if saved is None:
            return ids
        return ids - set(saved.elements)
