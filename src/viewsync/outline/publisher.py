"""Debounced, cancellable outline refresh for one open document."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from viewsync import config
from viewsync.debounce import Debouncer
from viewsync.outline.builder import OutlineNode, SymbolProvider, SymbolTreeBuilder

logger = logging.getLogger(__name__)


class OutlinePublisher:
    """Rebuilds and publishes a document's outline as the document changes.

    Only the newest build may publish: starting a build invalidates the
    token of any build still awaiting its providers. While the text model
    is not available yet, the update is retried ``retry_limit`` times before
    an empty outline is published.
    """

    def __init__(
        self,
        document_id: str,
        get_model: Callable[[], Any | None],
        providers: Sequence[SymbolProvider],
        publish: Callable[[list[OutlineNode]], None],
        builder: SymbolTreeBuilder | None = None,
        debounce_ms: int | None = None,
        retry_limit: int | None = None,
    ) -> None:
        self.document_id = document_id
        self._get_model = get_model
        self._providers = list(providers)
        self._publish = publish
        self._builder = builder or SymbolTreeBuilder()
        self._debouncer = Debouncer(
            debounce_ms if debounce_ms is not None else config.OUTLINE_UPDATE_DEBOUNCE_MS,
            name="outline-update",
        )
        self._retry_limit = retry_limit if retry_limit is not None else config.MODEL_RETRY_LIMIT
        self._model_retries = 0
        self._cached_roots: list[OutlineNode] | None = None
        self._can_update = True
        self._disposed = False

    @property
    def roots(self) -> list[OutlineNode] | None:
        """Last published outline, or None if nothing is cached."""
        return self._cached_roots

    def schedule_update(self) -> None:
        if self._disposed:
            return
        self._debouncer.schedule(self.document_id, self.update)

    def invalidate(self) -> None:
        """Content changed: drop the cached outline and rebuild."""
        # A build still awaiting providers would publish and cache pre-edit symbols
        self._builder.cancel()
        self._cached_roots = None
        self.schedule_update()

    @contextmanager
    def suspend_updates(self) -> Iterator[None]:
        """Ignore updates while the host reveals a range (avoids outline/editor cycles)."""
        self._can_update = False
        try:
            yield
        finally:
            self._can_update = True

    async def update(self) -> None:
        if not self._can_update or self._disposed:
            return

        token = self._builder.begin()
        model = self._resolve_model()
        if token.is_cancelled:
            return
        if model is None:
            if self._model_retries < self._retry_limit:
                self._model_retries += 1
                logger.debug(
                    "Text model for %s not ready, retry %d/%d",
                    self.document_id, self._model_retries, self._retry_limit,
                )
                self.schedule_update()
            else:
                logger.debug("Text model for %s never became ready, publishing empty outline", self.document_id)
                self._publish([])
            return
        self._model_retries = 0

        if self._cached_roots is not None:
            self._publish(self._cached_roots)
            return

        roots = await self._builder.build_from_providers(
            self.document_id, model, self._providers, token
        )
        if token.is_cancelled:
            return
        self._cached_roots = roots
        self._publish(roots)

    def dispose(self) -> None:
        self._disposed = True
        self._debouncer.cancel_all()
        self._builder.cancel()
        self._cached_roots = None

    def _resolve_model(self) -> Any | None:
        try:
            return self._get_model()
        except Exception:
            logger.debug("Failed to get text model for %s", self.document_id, exc_info=True)
            return None
