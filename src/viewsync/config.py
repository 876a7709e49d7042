"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _int(name: str, default: int) -> int:
    val = os.getenv(name)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {val!r}")


# Paths
DATA_DIR: Path = Path(os.getenv("DATA_DIR", "./data"))

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Layout persistence
LAYOUT_STORAGE_PREFIX: str = os.getenv("LAYOUT_STORAGE_PREFIX", "viewsync.diagram.layout:")
LAYOUT_SAVE_DEBOUNCE_MS: int = _int("LAYOUT_SAVE_DEBOUNCE_MS", 500)
LAYOUT_LOAD_WARN_MS: int = _int("LAYOUT_LOAD_WARN_MS", 100)

# Outline / selection sync
OUTLINE_UPDATE_DEBOUNCE_MS: int = _int("OUTLINE_UPDATE_DEBOUNCE_MS", 200)
TEXT_EDITOR_SYNC_DEBOUNCE_MS: int = _int("TEXT_EDITOR_SYNC_DEBOUNCE_MS", 200)
MODEL_RETRY_LIMIT: int = _int("MODEL_RETRY_LIMIT", 5)
OUTLINE_ID_SCOPE: str = os.getenv("OUTLINE_ID_SCOPE", "outline")

# Derived paths
SQLITE_PATH: Path = DATA_DIR / "viewsync.db"
