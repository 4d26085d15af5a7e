"""
Generated-content cache and saved-lesson history.

LessonCache keeps the last plan generated for each (problem, phase,
language) node so that reopening a completed phase replays it instead of
calling the provider again. SavedLessonHistory is the newest-first list of
finished lessons shown in history views.
"""

from __future__ import annotations

import time
from typing import Optional

from loguru import logger
from pydantic import Field

from src.lessonloop.models import LessonPlan, short_id
from src.lessonloop.widgets.base import CamelModel

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_DUPLICATE_WINDOW_SECONDS = 60


class CachedLesson(CamelModel):
    problem_id: str
    phase_index: int
    language: str
    plan: LessonPlan
    timestamp: float = Field(default_factory=time.time)

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.problem_id, self.phase_index, self.language)


class SavedLesson(CamelModel):
    id: str = Field(default_factory=short_id)
    problem_id: str
    node_index: int
    language: str
    plan: LessonPlan
    timestamp: float = Field(default_factory=time.time)
    xp_earned: int = 0
    mistake_count: int = 0


def _load_entries(model, document: list | None) -> list:
    entries = []
    for raw in document or []:
        try:
            entries.append(model.model_validate(raw))
        except ValueError as e:
            logger.warning(f"Skipping malformed {model.__name__} entry: {e}")
    return entries


class LessonCache:
    """Last generated plan per (problem, phase, language)."""

    def __init__(self, entries: Optional[list[CachedLesson]] = None):
        self.entries: list[CachedLesson] = list(entries or [])

    @classmethod
    def from_document(cls, document: list | None) -> "LessonCache":
        return cls(_load_entries(CachedLesson, document))

    def to_document(self) -> list[dict]:
        return [e.model_dump(mode="json", by_alias=True) for e in self.entries]

    def get(self, problem_id: str, phase_index: int, language: str) -> LessonPlan | None:
        key = (problem_id, phase_index, language)
        for entry in self.entries:
            if entry.key == key:
                return entry.plan
        return None

    def put(self, problem_id: str, phase_index: int, language: str, plan: LessonPlan) -> None:
        """Store a plan, evicting any earlier entry for the same node first."""
        entry = CachedLesson(
            problem_id=problem_id,
            phase_index=phase_index,
            language=language,
            plan=plan,
        )
        self.entries = [e for e in self.entries if e.key != entry.key]
        self.entries.append(entry)


class SavedLessonHistory:
    """Finished lessons, newest first, capped in length."""

    def __init__(
        self,
        lessons: Optional[list[SavedLesson]] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        duplicate_window_seconds: float = DEFAULT_DUPLICATE_WINDOW_SECONDS,
    ):
        self.lessons: list[SavedLesson] = list(lessons or [])
        self.limit = limit
        self.duplicate_window_seconds = duplicate_window_seconds

    @classmethod
    def from_document(cls, document: list | None, **kwargs) -> "SavedLessonHistory":
        return cls(_load_entries(SavedLesson, document), **kwargs)

    def to_document(self) -> list[dict]:
        return [s.model_dump(mode="json", by_alias=True) for s in self.lessons]

    def add(self, lesson: SavedLesson) -> bool:
        """
        Prepend a finished lesson.

        Returns False (and keeps the history unchanged) when the same
        problem and node were saved within the duplicate window.
        """
        for existing in self.lessons:
            if (
                existing.problem_id == lesson.problem_id
                and existing.node_index == lesson.node_index
                and lesson.timestamp - existing.timestamp < self.duplicate_window_seconds
            ):
                logger.debug(f"Skipping duplicate save for {lesson.problem_id} node {lesson.node_index}")
                return False

        self.lessons = [lesson, *self.lessons][: self.limit]
        return True

    def titles(self, limit: int = 10) -> list[str]:
        return [s.plan.title for s in self.lessons[:limit]]
