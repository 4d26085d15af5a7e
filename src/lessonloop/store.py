"""
Document persistence port.

Every logical document (progress map, stats, mistake log, lesson cache,
saved lessons, preferences) is a JSON value stored whole under its own
key. There are no cross-key transactions; a write replaces the value.

JsonFileStore keeps one file per key in ~/.lessonloop/ and writes through
a temp file + rename so a document is never left half-written.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

from loguru import logger

# Document keys
PROGRESS_KEY = "progress"
STATS_KEY = "stats"
MISTAKES_KEY = "mistakes"
LESSON_CACHE_KEY = "lesson_cache"
SAVED_LESSONS_KEY = "saved_lessons"
PREFERENCES_KEY = "preferences"

DOCUMENT_KEYS = (
    PROGRESS_KEY,
    STATS_KEY,
    MISTAKES_KEY,
    LESSON_CACHE_KEY,
    SAVED_LESSONS_KEY,
    PREFERENCES_KEY,
)

# Default data directory
DATA_DIR = Path.home() / ".lessonloop"


class PersistenceError(Exception):
    """A document could not be written. The caller's copy stays authoritative."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Failed to write '{key}': {message}")
        self.key = key


class DocumentStore(Protocol):
    """String-keyed JSON document store."""

    def get(self, key: str) -> Any | None:
        """Return the stored document, None when absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Replace the document under key. Raises PersistenceError on failure."""
        ...


class MemoryStore:
    """In-process store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._documents: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any | None:
        value = self._documents.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        try:
            # Same constraint as the file store: documents must be JSON
            self._documents[key] = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, str(e)) from e

    def keys(self) -> list[str]:
        return sorted(self._documents)

    def clear(self) -> None:
        self._documents.clear()


class JsonFileStore:
    """
    Stores each document as {data_dir}/{key}.json.

    Corrupted or unreadable files read as absent so the caller falls back
    to its default document.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key: str) -> Any | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable document {filepath}: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        filepath = self._path(key)
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, str(e)) from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, filepath)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"Could not remove temp file {tmp_name}")
            raise PersistenceError(key, str(e)) from e

        logger.debug(f"Wrote document '{key}' ({len(payload)} bytes)")

    def delete(self, key: str) -> bool:
        filepath = self._path(key)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.data_dir.glob("*.json"))
