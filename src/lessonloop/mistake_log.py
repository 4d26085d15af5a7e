"""
Durable mistake log.

Session mistakes are merged into a long-lived log keyed by a content
fingerprint, so the same missed concept accumulates a failure count
instead of piling up duplicates. Reviews raise a record's proficiency
until it is considered resolved.
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

from loguru import logger

from src.lessonloop.models import MistakeRecord

FINGERPRINT_CONTEXT_CHARS = 50
DEFAULT_RESOLVE_PROFICIENCY = 2


def fingerprint(record: MistakeRecord) -> str:
    """Identity of a mistake for merging: problem, widget kind, context prefix."""
    context = (record.context or "").strip().lower()
    name = (record.problem_name or "").strip().lower()
    question_type = record.question_type or "unknown"
    return f"{name}|{question_type}|{context[:FINGERPRINT_CONTEXT_CHARS]}"


def deduplicate(records: Iterable[MistakeRecord]) -> list[MistakeRecord]:
    """
    Merge records sharing a fingerprint.

    Keeps the latest timestamp, sums failure and review counts, keeps the
    best proficiency, and counts as resolved if any copy was resolved.
    """
    merged: dict[str, MistakeRecord] = {}
    for record in records:
        key = fingerprint(record)
        existing = merged.get(key)
        if existing is None:
            merged[key] = record.model_copy()
            continue

        merged[key] = existing.model_copy(update={
            "timestamp": max(existing.timestamp, record.timestamp),
            "failure_count": existing.failure_count + record.failure_count,
            "review_count": existing.review_count + record.review_count,
            "proficiency": max(existing.proficiency, record.proficiency),
            "is_resolved": existing.is_resolved or record.is_resolved,
        })
    return list(merged.values())


class MistakeLog:
    """The learner's persistent mistake history."""

    def __init__(self, records: Optional[list[MistakeRecord]] = None):
        self.records: list[MistakeRecord] = list(records or [])

    @classmethod
    def from_document(cls, document: list | None) -> "MistakeLog":
        records = []
        for raw in document or []:
            try:
                records.append(MistakeRecord.model_validate(raw))
            except ValueError as e:
                logger.warning(f"Skipping malformed mistake record: {e}")
        return cls(records)

    def to_document(self) -> list[dict]:
        return [r.model_dump(mode="json", by_alias=True) for r in self.records]

    def __len__(self) -> int:
        return len(self.records)

    def find(self, mistake_id: str) -> MistakeRecord | None:
        for record in self.records:
            if record.id == mistake_id:
                return record
        return None

    def for_problem(self, problem_name: str) -> list[MistakeRecord]:
        return [r for r in self.records if r.problem_name == problem_name]

    def unresolved(self) -> list[MistakeRecord]:
        return [r for r in self.records if not r.is_resolved]

    def upsert(self, session_mistakes: Iterable[MistakeRecord], now: float | None = None) -> int:
        """
        Merge a session's mistakes into the log.

        A repeat of a known mistake bumps its failure count and reopens it.
        Returns the number of new entries added.
        """
        now = now if now is not None else time.time()
        index = {fingerprint(r): i for i, r in enumerate(self.records)}
        added = 0

        for mistake in session_mistakes:
            key = fingerprint(mistake)
            position = index.get(key)
            if position is not None:
                existing = self.records[position]
                self.records[position] = existing.model_copy(update={
                    "timestamp": now,
                    "failure_count": existing.failure_count + 1,
                    "is_resolved": False,
                    "proficiency": 0,
                })
            else:
                self.records.append(mistake.model_copy(update={
                    "proficiency": 0,
                    "failure_count": 1,
                    "is_resolved": False,
                }))
                index[key] = len(self.records) - 1
                added += 1

        return added

    def mark_reviewed(
        self,
        mistake_id: str,
        resolve_at: int = DEFAULT_RESOLVE_PROFICIENCY,
    ) -> MistakeRecord | None:
        """Credit a clean review of one mistake; resolves it at `resolve_at` proficiency."""
        for position, record in enumerate(self.records):
            if record.id != mistake_id:
                continue
            proficiency = record.proficiency + 1
            updated = record.model_copy(update={
                "proficiency": proficiency,
                "review_count": record.review_count + 1,
                "is_resolved": record.is_resolved or proficiency >= resolve_at,
            })
            self.records[position] = updated
            return updated

        logger.warning(f"Reviewed mistake {mistake_id} not found in log")
        return None
