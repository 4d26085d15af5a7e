"""
Whole-profile export and import.

An export is every stored document plus a format version and timestamp.
Import writes each document found in the payload back whole; the mistake
log is deduplicated on the way in so merged backups do not double up.
"""

from __future__ import annotations

import time
from typing import Any

from loguru import logger

from src.lessonloop.mistake_log import MistakeLog, deduplicate
from src.lessonloop.store import DOCUMENT_KEYS, MISTAKES_KEY, DocumentStore

BACKUP_VERSION = 1


class BackupError(Exception):
    """The payload is not a lessonloop backup."""


def export_profile(store: DocumentStore) -> dict[str, Any]:
    data: dict[str, Any] = {
        "version": BACKUP_VERSION,
        "timestamp": time.time(),
    }
    for key in DOCUMENT_KEYS:
        document = store.get(key)
        if document is not None:
            data[key] = document
    return data


def import_profile(store: DocumentStore, data: dict[str, Any]) -> list[str]:
    """
    Write the documents from a backup into the store.

    Returns the keys that were written. Raises BackupError for a payload
    that is not a dict or carries a newer format version.
    """
    if not isinstance(data, dict):
        raise BackupError("Backup must be a JSON object")

    version = data.get("version", BACKUP_VERSION)
    if not isinstance(version, int) or version > BACKUP_VERSION:
        raise BackupError(f"Unsupported backup version: {version!r}")

    written = []
    for key in DOCUMENT_KEYS:
        if key not in data:
            continue

        document = data[key]
        if key == MISTAKES_KEY:
            log = MistakeLog.from_document(document if isinstance(document, list) else [])
            before = len(log)
            log = MistakeLog(deduplicate(log.records))
            if len(log) < before:
                logger.info(f"Merged {before - len(log)} duplicate mistake(s) on import")
            document = log.to_document()

        store.set(key, document)
        written.append(key)

    logger.info(f"Imported {len(written)} document(s): {', '.join(written) or 'none'}")
    return written
