"""
Lesson Engine: screen-by-screen state machine for one lesson session.

Owns the live screen sequence, per-screen status, streak/XP, the remedial
mistake loop and the max-mistakes gate. Validation is delegated to
WidgetValidator and failure bookkeeping to MistakeManager.

The screen sequence only grows during a session (retry splicing and
in-loop re-attempts append to the tail), so an index, once issued, keeps
pointing at the same screen.
"""

from __future__ import annotations

import time
from enum import Enum

from loguru import logger

from src.lessonloop.mistake_manager import MistakeManager
from src.lessonloop.models import (
    ExamRecord,
    LessonPlan,
    LessonScreen,
    MistakeRecord,
    SessionPolicy,
    SessionSummary,
    short_id,
)
from src.lessonloop.validator import WidgetValidator
from src.lessonloop.widgets import AnswerState, find_assessable_widget

DEFAULT_XP_PER_CORRECT = 10


class EngineStatus(str, Enum):
    """Status of the current screen."""

    IDLE = "idle"
    CORRECT = "correct"
    WRONG = "wrong"


class LessonEngine:
    """
    State machine over a LessonPlan.

    Usage:
        engine = LessonEngine(plan, node_index=2, problem_name="Two Sum")
        engine.submit_answer(AnswerState(quiz_selection=1))
        engine.next_screen()
        ...
        if engine.is_finished:
            summary = engine.summary()
    """

    def __init__(
        self,
        plan: LessonPlan,
        node_index: int = 0,
        policy: SessionPolicy | None = None,
        problem_name: str | None = None,
        xp_per_correct: int = DEFAULT_XP_PER_CORRECT,
        validator: WidgetValidator | None = None,
        mistake_manager: MistakeManager | None = None,
    ):
        self.plan = plan
        self.node_index = node_index
        self.policy = policy or SessionPolicy()
        self.problem_name = problem_name or plan.title
        self.xp_per_correct = xp_per_correct
        self.validator = validator or WidgetValidator()
        self.mistakes = mistake_manager or MistakeManager()

        self.screens: list[LessonScreen] = list(plan.screens)
        self.current_index = 0
        self.status = EngineStatus.IDLE

        # Gamification
        self.streak = 0
        self.xp_gained = 0
        self.correct_count = 0

        # Session flags
        self.is_finished = False
        self.is_failed = False
        self.is_limit_disabled = False

        self.exam_results: list[ExamRecord] = []

        self._started_at = time.monotonic()
        self._finished_at: float | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current_screen(self) -> LessonScreen | None:
        """Screen on display, None once the index is past the end (summary)."""
        if 0 <= self.current_index < len(self.screens):
            return self.screens[self.current_index]
        return None

    @property
    def total_screens(self) -> int:
        return len(self.screens)

    @property
    def is_last_screen(self) -> bool:
        return self.current_index >= len(self.screens) - 1

    @property
    def is_in_mistake_loop(self) -> bool:
        return self.mistakes.is_in_mistake_loop

    @property
    def mistake_count(self) -> int:
        return self.mistakes.mistake_count

    @property
    def session_mistakes(self) -> list[MistakeRecord]:
        return list(self.mistakes.session_mistakes)

    @property
    def elapsed_seconds(self) -> float:
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        return end - self._started_at

    # =========================================================================
    # Answering
    # =========================================================================

    def submit_answer(self, state: AnswerState) -> bool | None:
        """
        Validate the learner's answer for the current screen and apply it.

        Returns the verdict, or None for a screen without an assessable
        widget (the caller simply advances).
        """
        screen = self.current_screen
        if screen is None:
            return None

        widget = find_assessable_widget(screen.widgets)
        if widget is None:
            return None

        is_correct = self.validator.validate(widget, state)
        if self.policy.is_exam:
            self.submit_exam_answer(is_correct, state.to_dict())
        else:
            self.check_answer(is_correct)
        return is_correct

    def check_answer(self, is_correct: bool) -> EngineStatus:
        """Apply a verdict to the current (idle) screen."""
        screen = self.current_screen
        if screen is None or self.is_finished or self.status is not EngineStatus.IDLE:
            logger.debug(f"check_answer ignored (status={self.status.value}, index={self.current_index})")
            return self.status

        if is_correct:
            self._credit_correct()
            logger.debug(f"Screen {screen.id} correct; streak={self.streak} xp={self.xp_gained}")
            return self.status

        self.status = EngineStatus.WRONG
        self.streak = 0

        if self.mistakes.is_in_mistake_loop:
            # Re-attempt later in this loop rather than logging again
            clone = screen.model_copy(
                update={"id": f"{screen.id}_retry_{short_id()}"},
                deep=True,
            )
            self.screens.append(clone)
            logger.debug(f"Wrong in mistake loop; {clone.id} appended ({len(self.screens)} screens)")
        else:
            self.mistakes.record_mistake(
                screen, self.problem_name, self.node_index
            )

        return self.status

    def retry_current(self) -> None:
        """Reset the current screen so it can be answered again."""
        self.status = EngineStatus.IDLE

    # =========================================================================
    # Navigation
    # =========================================================================

    def next_screen(self) -> None:
        """
        Advance to the next screen.

        Blocked while the max-mistakes gate is tripped. At the end of the
        sequence either enters the remedial loop or finishes the session.
        """
        if self.is_finished:
            return

        if self._threshold_exceeded():
            if not self.is_failed:
                logger.info(
                    f"Mistake limit exceeded ({self.mistake_count} > {self.policy.max_mistakes}), "
                    f"session failed at screen {self.current_index}"
                )
            self.is_failed = True
            return

        self.status = EngineStatus.IDLE

        if not self.is_last_screen:
            self.current_index += 1
            return

        if self._should_enter_mistake_loop():
            self.mistakes.start_review_loop()
            queued = list(self.mistakes.retry_queue)
            self.screens.extend(queued)
            self.mistakes.clear_queue()
            self.current_index += 1
            logger.debug(f"Entering mistake loop with {len(queued)} retry screen(s)")
            return

        self._finish()

    def continue_as_practice(self) -> None:
        """Clear the failure and disable the mistake gate for this session only."""
        self.is_failed = False
        self.is_limit_disabled = True
        logger.debug("Mistake limit disabled; continuing as practice")

    def submit_exam_answer(self, is_correct: bool, user_state: dict | None = None) -> None:
        """
        Exam-mode answer: record the verdict and always advance.

        Exams never loop and are not gated; the last answer moves past the
        final screen to trigger the summary.
        """
        if self.is_finished or self.current_screen is None:
            return

        screen = self.current_screen
        self.exam_results.append(
            ExamRecord(screen_index=self.current_index, is_correct=is_correct, user_state=user_state)
        )

        if is_correct:
            self._credit_correct()
        else:
            self.streak = 0
            self.mistakes.record_mistake(screen, self.problem_name, self.node_index)

        self.status = EngineStatus.IDLE
        if self.is_last_screen:
            self._finish()
        else:
            self.current_index += 1

    def replace_current_screen(self, new_screen: LessonScreen) -> None:
        """Swap the content at the current index (e.g. after regeneration)."""
        if self.current_screen is None:
            return
        self.screens[self.current_index] = new_screen
        self.status = EngineStatus.IDLE

    def rectify_mistake(self) -> bool:
        """
        Apply an upheld appeal: the last wrong answer was actually right.

        Credits streak and XP as for a correct answer and drops the most
        recent mistake record, if any. Returns False when there is
        no wrong verdict on screen to rectify.
        """
        if self.status is not EngineStatus.WRONG:
            return False

        self._credit_correct()
        if self.mistake_count:
            self.mistakes.remove_last_mistake()
        logger.debug(f"Appeal upheld on screen {self.current_index}; mistakes={self.mistake_count}")
        return True

    # =========================================================================
    # Summary
    # =========================================================================

    def summary(self) -> SessionSummary:
        return SessionSummary(
            xp=self.xp_gained,
            streak=self.streak,
            mistakes=self.session_mistakes,
            exam_results=list(self.exam_results),
            total_screens=len(self.screens),
            correct_count=self.correct_count,
            elapsed_seconds=self.elapsed_seconds,
            finished=self.is_finished,
            failed=self.is_failed,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _credit_correct(self) -> None:
        self.status = EngineStatus.CORRECT
        self.streak += 1
        self.xp_gained += self.xp_per_correct
        self.correct_count += 1

    def _threshold_exceeded(self) -> bool:
        max_mistakes = self.policy.max_mistakes
        if max_mistakes is None or self.is_limit_disabled or self.policy.is_exam:
            return False
        return self.mistake_count > max_mistakes

    def _should_enter_mistake_loop(self) -> bool:
        if self.policy.is_exam:
            return False
        if not self.mistakes.has_pending_mistakes or self.mistakes.is_in_mistake_loop:
            return False
        return not self.policy.is_review_mode or self.policy.allow_mistake_loop

    def _finish(self) -> None:
        self.is_finished = True
        self.current_index = len(self.screens)
        self._finished_at = time.monotonic()
        logger.debug(
            f"Session finished: xp={self.xp_gained} streak={self.streak} mistakes={self.mistake_count}"
        )
