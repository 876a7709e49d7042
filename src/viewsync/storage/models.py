"""Persisted diagram layout record and its schema migration chain.

On-disk JSON (camelCase):

    {version, documentKey, timestamp,
     elements: {id: {position: {x, y}, size?: {width, height}}},
     idMap?, fingerprints?, viewState?}

v1 had only ``elements``; v2 added ``idMap``/``fingerprints``; v3 added
``viewState``. Older records are upgraded one step at a time.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_LAYOUT_VERSION = 3


class LayoutVersionError(ValueError):
    """Record version outside the range this engine can migrate."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Point(_CamelModel):
    x: float
    y: float


class Size(_CamelModel):
    width: float
    height: float


class ElementLayout(_CamelModel):
    position: Point
    size: Size | None = None


class ViewState(_CamelModel):
    """Viewport and toggle state of a diagram view."""

    zoom: float | None = None
    scroll: Point | None = None
    snap_to_grid: bool | None = None
    minimap_visible: bool | None = None
    arrowheads_visible: bool | None = None
    edge_jumps_enabled: bool | None = None
    edge_routing_mode: str | None = None


class LayoutRecord(_CamelModel):
    version: int = CURRENT_LAYOUT_VERSION
    # Records from older engines name the identity field "uri"
    document_key: str = Field(
        validation_alias=AliasChoices("documentKey", "document_key", "uri"),
        serialization_alias="documentKey",
    )
    timestamp: int
    elements: dict[str, ElementLayout] = Field(default_factory=dict)
    # Identity-reconciliation aids owned by the id generator; stored as-is
    id_map: dict[str, str] | None = None
    fingerprints: dict[str, Any] | None = None
    view_state: ViewState | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Migrations (raw JSON dicts) ──


def record_identity(raw: dict[str, Any]) -> str | None:
    value = raw.get("documentKey", raw.get("uri"))
    return value if isinstance(value, str) else None


def _v1_to_v2(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "version": 2,
        "documentKey": record_identity(raw),
        # v1 records may carry nothing but elements
        "timestamp": raw.get("timestamp") or 0,
        "elements": raw.get("elements", {}),
    }


def _v2_to_v3(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "version": 3,
        "documentKey": record_identity(raw),
        "timestamp": raw.get("timestamp") or 0,
        "elements": raw.get("elements", {}),
        "idMap": raw.get("idMap"),
        "fingerprints": raw.get("fingerprints"),
        "viewState": None,
    }


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def migrate_layout(raw: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a raw record to CURRENT_LAYOUT_VERSION.

    Raises LayoutVersionError for a missing, non-integer, pre-v1 or
    newer-than-current version. The input dict is not modified.
    """
    version = raw.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise LayoutVersionError(f"Layout version {version!r} is not an integer")
    if version < 1:
        raise LayoutVersionError(f"Layout version {version} is below 1")
    if version > CURRENT_LAYOUT_VERSION:
        raise LayoutVersionError(
            f"Layout version {version} is newer than supported {CURRENT_LAYOUT_VERSION}"
        )
    while version < CURRENT_LAYOUT_VERSION:
        raw = MIGRATIONS[version](raw)
        version = raw["version"]
    return raw
