"""
Lesson data models.

Content (plans, screens, mistake snapshots) is pydantic so it can be read
from provider output and persisted documents with the same camelCase
shape. Session bookkeeping that never leaves the process uses dataclasses.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from pydantic import Field

from src.lessonloop.widgets import Widget
from src.lessonloop.widgets.base import CamelModel


def short_id() -> str:
    """Short random identifier for generated screens and records."""
    return uuid.uuid4().hex[:8]


class LessonScreen(CamelModel):
    """One page of a lesson. Widget order is display order."""

    id: str
    header: str | None = None
    widgets: list[Widget] = Field(default_factory=list)
    is_retry: bool = False
    retry_of: str | None = None  # source screen id for synthesized retries


class LessonPlan(CamelModel):
    """Generated lesson content for one session."""

    title: str
    description: str = ""
    screens: list[LessonScreen] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)
    is_local_replay: bool = False


class MistakeRecord(CamelModel):
    """
    A failed answer, with a snapshot of the widget that was missed.

    The log fields (failure_count, review_count, proficiency, is_resolved)
    are only meaningful once the record is merged into the durable log.
    """

    id: str = Field(default_factory=short_id)
    problem_name: str
    node_index: int
    question_type: str
    context: str = "Practice"
    widget: Widget | None = None
    timestamp: float = Field(default_factory=time.time)

    failure_count: int = 1
    review_count: int = 0
    proficiency: int = 0
    is_resolved: bool = False


@dataclass(frozen=True)
class SessionPolicy:
    """Per-session flags, fixed for the lifetime of a LessonEngine."""

    is_review_mode: bool = False
    allow_mistake_loop: bool = False  # only consulted in review mode
    max_mistakes: int | None = None
    is_skip_attempt: bool = False
    is_exam: bool = False


@dataclass
class ExamRecord:
    """Verdict for one screen of an exam-mode session."""

    screen_index: int
    is_correct: bool
    user_state: dict[str, Any] | None = None


@dataclass
class SessionSummary:
    """What a finished (or abandoned) session hands to the controller."""

    xp: int
    streak: int
    mistakes: list[MistakeRecord] = field(default_factory=list)
    exam_results: list[ExamRecord] = field(default_factory=list)
    total_screens: int = 0
    correct_count: int = 0
    elapsed_seconds: float = 0.0
    finished: bool = False
    failed: bool = False

    @property
    def mistake_count(self) -> int:
        return len(self.mistakes)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mistakes"] = [m.model_dump(mode="json", by_alias=True) for m in self.mistakes]
        return data
