"""
Progression Controller: per-problem mastery levels and session orchestration.

Sits above LessonEngine:
- Requests lesson plans from a ContentProvider (or replays cached ones)
- Builds a LessonEngine with the right SessionPolicy
- On completion folds the session into stats, the mistake log, the
  saved-lesson history and the content cache, then applies the level rules

Levels live in a progress document shaped {language: {problem_id: level}}
with 0 = unstarted, 1-5 = phases, 6 = mastered. Every level change
rewrites the whole document.

Generation is serialized: one request in flight at a time. A request that
resolves after the learner abandoned it (or started another) is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from loguru import logger

from src.lessonloop.engine import DEFAULT_XP_PER_CORRECT, LessonEngine
from src.lessonloop.lesson_cache import (
    DEFAULT_DUPLICATE_WINDOW_SECONDS,
    DEFAULT_HISTORY_LIMIT,
    LessonCache,
    SavedLesson,
    SavedLessonHistory,
)
from src.lessonloop.mistake_log import DEFAULT_RESOLVE_PROFICIENCY, MistakeLog
from src.lessonloop.models import LessonPlan, LessonScreen, SessionPolicy, SessionSummary
from src.lessonloop.provider import ContentProvider, GenerationError, GenerationRequest
from src.lessonloop.stats import UserStats
from src.lessonloop.store import (
    LESSON_CACHE_KEY,
    MISTAKES_KEY,
    PREFERENCES_KEY,
    PROGRESS_KEY,
    SAVED_LESSONS_KEY,
    STATS_KEY,
    DocumentStore,
    PersistenceError,
)

MASTERY_LEVEL = 6
SKIP_PHASE_INDEX = 5
SKIP_MAX_MISTAKES = 2
RECENT_MISTAKES_IN_PROMPT = 5


class ControllerStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class Problem:
    """A practice problem. Levels are keyed by id, skip failures by name."""

    id: str
    name: str


@dataclass
class CompletionOutcome:
    """What complete_session changed."""

    previous_level: int
    new_level: int
    skip_passed: bool | None = None  # None when the session was not a skip attempt
    mistakes_added: int = 0
    saved: bool = False

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


@dataclass
class _PendingLoad:
    problem: Problem
    request: GenerationRequest
    policy: SessionPolicy


@dataclass
class _ActiveSession:
    problem: Problem
    phase_index: int
    plan: LessonPlan
    policy: SessionPolicy
    engine: LessonEngine
    reviewed_mistake_id: str | None = None


def apply_level_rules(
    level: int,
    phase_index: int,
    mistake_count: int,
    is_skip: bool = False,
    failed: bool = False,
    finished: bool = True,
    mastery_level: int = MASTERY_LEVEL,
    skip_max_mistakes: int = SKIP_MAX_MISTAKES,
    skip_phase_index: int = SKIP_PHASE_INDEX,
) -> tuple[int, bool | None]:
    """
    Compute the level after a completed session.

    Returns (new_level, skip_passed). skip_passed is None for a normal
    session. A level never decreases.

    - Skip attempt (only at skip_phase_index): passes when the session was
      finished, did not fail and had at most skip_max_mistakes mistakes,
      then jumps straight to mastery. A failure leaves the level alone.
    - Normal session: finishing the next unlocked phase (phase == level)
      unlocks the one after it. Replays of earlier phases change nothing.
    """
    if is_skip and phase_index == skip_phase_index:
        passed = finished and not failed and mistake_count <= skip_max_mistakes
        return (max(level, mastery_level) if passed else level), passed

    if failed or not finished:
        return level, None
    if phase_index < mastery_level and phase_index == level:
        return phase_index + 1, None
    return level, None


class ProgressionController:
    """
    Orchestrates lesson sessions and owns the persisted learner documents.

    Usage:
        controller = ProgressionController(store, provider, language="Python")
        engine = await controller.start_node(Problem("two-sum", "Two Sum"), phase_index=0)
        ...  # drive the engine
        outcome = controller.complete_session()

    Write failures never propagate: the in-memory documents stay
    authoritative and flush() resubmits whatever did not reach the store.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: ContentProvider,
        language: str = "Python",
        spoken_language: str = "English",
        xp_per_correct: int = DEFAULT_XP_PER_CORRECT,
        skip_phase_index: int = SKIP_PHASE_INDEX,
        skip_max_mistakes: int = SKIP_MAX_MISTAKES,
        mastery_level: int = MASTERY_LEVEL,
        saved_lessons_limit: int = DEFAULT_HISTORY_LIMIT,
        duplicate_save_window_seconds: float = DEFAULT_DUPLICATE_WINDOW_SECONDS,
        mistake_resolve_proficiency: int = DEFAULT_RESOLVE_PROFICIENCY,
    ):
        self.store = store
        self.provider = provider
        self.language = language
        self.spoken_language = spoken_language
        self.xp_per_correct = xp_per_correct
        self.skip_phase_index = skip_phase_index
        self.skip_max_mistakes = skip_max_mistakes
        self.mastery_level = mastery_level
        self.mistake_resolve_proficiency = mistake_resolve_proficiency

        # Documents
        self._progress: dict[str, dict[str, int]] = _as_dict(store.get(PROGRESS_KEY))
        self._preferences: dict[str, Any] = _as_dict(store.get(PREFERENCES_KEY))
        self.stats = UserStats.from_document(store.get(STATS_KEY))
        self.mistake_log = MistakeLog.from_document(store.get(MISTAKES_KEY))
        self.lesson_cache = LessonCache.from_document(store.get(LESSON_CACHE_KEY))
        self.saved_lessons = SavedLessonHistory.from_document(
            store.get(SAVED_LESSONS_KEY),
            limit=saved_lessons_limit,
            duplicate_window_seconds=duplicate_save_window_seconds,
        )

        # Loading state
        self.status = ControllerStatus.IDLE
        self.generation_error: str | None = None
        self.generation_raw_error: str | None = None
        self.session: _ActiveSession | None = None
        self._pending: _PendingLoad | None = None
        self._seq = 0

        # Keys whose latest write did not reach the store
        self._dirty: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        store: DocumentStore,
        provider: ContentProvider,
        settings: Optional[Any] = None,
    ) -> "ProgressionController":
        """Build a controller with policy values taken from Settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()

        return cls(
            store,
            provider,
            language=settings.target_language,
            spoken_language=settings.spoken_language,
            **settings.get_lesson_config(),
        )

    # =========================================================================
    # Levels
    # =========================================================================

    def get_level(self, problem_id: str) -> int:
        level = self._progress.get(self.language, {}).get(problem_id, 0)
        try:
            return max(0, min(int(level), self.mastery_level))
        except (TypeError, ValueError):
            return 0

    def set_level(self, problem_id: str, level: int) -> None:
        """Replace the language's level map with one containing the new level."""
        level = max(0, min(level, self.mastery_level))
        language_map = dict(self._progress.get(self.language, {}))
        language_map[problem_id] = level

        progress = dict(self._progress)
        progress[self.language] = language_map
        self._progress = progress
        self._write(PROGRESS_KEY)
        logger.info(f"Level for {problem_id} ({self.language}) set to {level}")

    @property
    def progress(self) -> dict[str, dict[str, int]]:
        return {lang: dict(levels) for lang, levels in self._progress.items()}

    @property
    def failed_skips(self) -> dict[str, bool]:
        return dict(self._preferences.get("failedSkips") or {})

    def is_skip_locked(self, problem: Problem) -> bool:
        """A failed skip challenge is not offered again."""
        return bool(self.failed_skips.get(problem.name))

    # =========================================================================
    # Starting sessions
    # =========================================================================

    async def start_node(
        self,
        problem: Problem,
        phase_index: int,
        is_skip: bool = False,
    ) -> LessonEngine | None:
        """
        Open a lesson for one phase of a problem.

        Completed phases replay their cached plan. Otherwise the provider
        is asked for a new one. Returns None when a request is already in
        flight, when the response went stale, or on a generation error
        (see generation_error and retry_loading()).
        """
        if self.status is ControllerStatus.LOADING:
            logger.warning(f"Generation already in progress; ignoring start of {problem.name}")
            return None

        if is_skip and phase_index != self.skip_phase_index:
            logger.warning(
                f"Skip requested for phase {phase_index} of {problem.name}; "
                f"only phase {self.skip_phase_index} can be skipped, starting a normal session"
            )
            is_skip = False

        if is_skip:
            policy = SessionPolicy(max_mistakes=self.skip_max_mistakes, is_skip_attempt=True)
        else:
            policy = SessionPolicy()

        if not is_skip and phase_index < self.get_level(problem.id):
            cached = self.lesson_cache.get(problem.id, phase_index, self.language)
            if cached is not None:
                logger.info(f"Replaying cached phase {phase_index} of {problem.name}")
                plan = cached.model_copy(update={"is_local_replay": True}, deep=True)
                return self._open_session(problem, phase_index, plan, policy)

        request = GenerationRequest(
            problem_id=problem.id,
            problem_name=problem.name,
            phase_index=phase_index,
            language=self.language,
            spoken_language=self.spoken_language,
            recent_mistakes=self._recent_mistake_contexts(problem.name),
            history=tuple(self.saved_lessons.titles()),
            is_skip_attempt=is_skip,
        )
        return await self._load(_PendingLoad(problem=problem, request=request, policy=policy))

    async def start_skip_challenge(self, problem: Problem) -> LessonEngine | None:
        """Attempt the skip phase directly. Refused once a skip has failed."""
        if self.is_skip_locked(problem):
            logger.info(f"Skip challenge for {problem.name} is locked after a failed attempt")
            return None
        return await self.start_node(problem, self.skip_phase_index, is_skip=True)

    async def retry_loading(self) -> LessonEngine | None:
        """Re-issue the failed request unchanged, skip flag included."""
        if self.status is not ControllerStatus.ERROR or self._pending is None:
            logger.debug(f"Nothing to retry (status={self.status.value})")
            return None
        return await self._load(self._pending)

    def abandon(self) -> None:
        """Leave the current lesson. A response still in flight will be dropped."""
        self._seq += 1
        self._pending = None
        self.session = None
        self.status = ControllerStatus.IDLE
        self.generation_error = None
        self.generation_raw_error = None

    def start_mistake_review(self, mistake_id: str) -> LessonEngine | None:
        """Open a one-screen review of a logged mistake. No generation involved."""
        record = self.mistake_log.find(mistake_id)
        if record is None or record.widget is None:
            logger.warning(f"Mistake {mistake_id} not found or has no widget to review")
            return None

        plan = LessonPlan(
            title=f"Review: {record.problem_name}",
            description=record.context,
            screens=[
                LessonScreen(
                    id=f"review_{record.id}",
                    header=record.context,
                    widgets=[record.widget.model_copy(deep=True)],
                )
            ],
            is_local_replay=True,
        )
        problem = Problem(id=record.problem_name, name=record.problem_name)
        return self._open_session(
            problem,
            record.node_index,
            plan,
            SessionPolicy(is_review_mode=True),
            reviewed_mistake_id=record.id,
        )

    # =========================================================================
    # Completion
    # =========================================================================

    def complete_session(self, summary: SessionSummary | None = None) -> CompletionOutcome | None:
        """
        Fold the active session into the persisted documents.

        Order: stats, mistake log (and review credit), saved history,
        content cache, then level rules. Returns None without an active
        session.
        """
        session = self.session
        if session is None:
            logger.warning("complete_session called with no active session")
            return None

        summary = summary or session.engine.summary()
        policy = session.policy
        problem = session.problem

        self.stats = self.stats.apply_session(summary.xp, summary.streak)
        self._write(STATS_KEY)

        added = 0
        if summary.mistakes:
            added = self.mistake_log.upsert(summary.mistakes)
            self._write(MISTAKES_KEY)
            logger.info(f"Mistake log: {added} new, {len(self.mistake_log)} total")

        if session.reviewed_mistake_id and summary.mistake_count == 0:
            self.mistake_log.mark_reviewed(
                session.reviewed_mistake_id, resolve_at=self.mistake_resolve_proficiency
            )
            self._write(MISTAKES_KEY)

        outcome = CompletionOutcome(
            previous_level=self.get_level(problem.id),
            new_level=self.get_level(problem.id),
            mistakes_added=added,
        )

        if policy.is_review_mode:
            self._close_session()
            return outcome

        outcome.saved = self.saved_lessons.add(
            SavedLesson(
                problem_id=problem.id,
                node_index=session.phase_index,
                language=self.language,
                plan=session.plan,
                xp_earned=summary.xp,
                mistake_count=summary.mistake_count,
            )
        )
        if outcome.saved:
            self._write(SAVED_LESSONS_KEY)

        if not session.plan.is_local_replay:
            self.lesson_cache.put(problem.id, session.phase_index, self.language, session.plan)
            self._write(LESSON_CACHE_KEY)

        new_level, skip_passed = apply_level_rules(
            outcome.previous_level,
            session.phase_index,
            summary.mistake_count,
            is_skip=policy.is_skip_attempt,
            failed=summary.failed,
            finished=summary.finished,
            mastery_level=self.mastery_level,
            skip_max_mistakes=self.skip_max_mistakes,
            skip_phase_index=self.skip_phase_index,
        )
        outcome.new_level = new_level
        outcome.skip_passed = skip_passed

        if new_level != outcome.previous_level:
            self.set_level(problem.id, new_level)

        if skip_passed is False:
            self._record_failed_skip(problem)
        elif skip_passed:
            logger.info(f"Skip challenge passed for {problem.name} with {summary.mistake_count} mistake(s)")

        self._close_session()
        return outcome

    # =========================================================================
    # Persistence
    # =========================================================================

    def flush(self) -> bool:
        """Resubmit every document whose last write failed. True when all landed."""
        for key in sorted(self._dirty):
            self._write(key)
        return not self._dirty

    @property
    def dirty_keys(self) -> set[str]:
        return set(self._dirty)

    def _document(self, key: str) -> Any:
        if key == PROGRESS_KEY:
            return self._progress
        if key == PREFERENCES_KEY:
            return self._preferences
        if key == STATS_KEY:
            return self.stats.to_document()
        if key == MISTAKES_KEY:
            return self.mistake_log.to_document()
        if key == LESSON_CACHE_KEY:
            return self.lesson_cache.to_document()
        if key == SAVED_LESSONS_KEY:
            return self.saved_lessons.to_document()
        raise KeyError(key)

    def _write(self, key: str) -> None:
        try:
            self.store.set(key, self._document(key))
        except PersistenceError as e:
            logger.error(f"{e}; keeping in-memory copy")
            self._dirty.add(key)
            return
        self._dirty.discard(key)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _load(self, pending: _PendingLoad) -> LessonEngine | None:
        self._seq += 1
        seq = self._seq
        self._pending = pending
        self.status = ControllerStatus.LOADING
        self.generation_error = None
        self.generation_raw_error = None

        request = pending.request
        try:
            plan = await self.provider.generate(request)
        except GenerationError as e:
            if seq != self._seq:
                logger.warning(f"Discarding stale generation error for {request.problem_name}")
                return None
            self.status = ControllerStatus.ERROR
            self.generation_error = e.message
            self.generation_raw_error = e.raw_output
            logger.warning(f"Generation failed for {request.problem_name}: {e.message}")
            return None
        except Exception as e:
            if seq != self._seq:
                logger.warning(f"Discarding stale provider failure for {request.problem_name}")
                return None
            self.status = ControllerStatus.ERROR
            self.generation_error = str(e) or type(e).__name__
            self.generation_raw_error = None
            logger.exception(f"Provider raised unexpectedly for {request.problem_name}: {e}")
            return None

        if seq != self._seq:
            logger.warning(
                f"Discarding stale lesson for {request.problem_name} phase {request.phase_index}"
            )
            return None

        self._pending = None
        return self._open_session(pending.problem, request.phase_index, plan, pending.policy)

    def _open_session(
        self,
        problem: Problem,
        phase_index: int,
        plan: LessonPlan,
        policy: SessionPolicy,
        reviewed_mistake_id: str | None = None,
    ) -> LessonEngine:
        engine = LessonEngine(
            plan,
            node_index=phase_index,
            policy=policy,
            problem_name=problem.name,
            xp_per_correct=self.xp_per_correct,
        )
        self.session = _ActiveSession(
            problem=problem,
            phase_index=phase_index,
            plan=plan,
            policy=policy,
            engine=engine,
            reviewed_mistake_id=reviewed_mistake_id,
        )
        self.status = ControllerStatus.READY
        logger.debug(f"Session opened: {problem.name} phase {phase_index} ({len(plan.screens)} screens)")
        return engine

    def _close_session(self) -> None:
        self.session = None
        self.status = ControllerStatus.IDLE

    def _record_failed_skip(self, problem: Problem) -> None:
        failed = self.failed_skips
        failed[problem.name] = True
        preferences = dict(self._preferences)
        preferences["failedSkips"] = failed
        self._preferences = preferences
        self._write(PREFERENCES_KEY)
        logger.info(f"Skip challenge failed for {problem.name}; skip locked")

    def _recent_mistake_contexts(self, problem_name: str) -> tuple[str, ...]:
        recent = [r for r in self.mistake_log.for_problem(problem_name) if not r.is_resolved]
        recent.sort(key=lambda r: r.timestamp, reverse=True)
        return tuple(
            f"{r.question_type} ({r.context})" for r in recent[:RECENT_MISTAKES_IN_PROMPT]
        )


def _as_dict(document: Any) -> dict:
    return dict(document) if isinstance(document, dict) else {}
