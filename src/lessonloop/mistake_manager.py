"""
Session mistake bookkeeping.

Records failed answers, keeps a queue of single-widget retry screens for
the remedial loop, and supports undoing the latest record when an appeal
is upheld. All operations are total over the internal collections.
"""

from __future__ import annotations

from loguru import logger

from src.lessonloop.models import LessonScreen, MistakeRecord, short_id
from src.lessonloop.widgets import Widget, find_assessable_widget


class MistakeManager:
    """
    Tracks mistakes made during one lesson session.

    - session_mistakes: records in the order they were made
    - retry_queue: pending retry screens, one per failed screen
    - is_in_mistake_loop: set once the engine has spliced the queue in
    """

    def __init__(self):
        self.session_mistakes: list[MistakeRecord] = []
        self.retry_queue: list[LessonScreen] = []
        self.is_in_mistake_loop = False
        # record id -> retry screen id queued alongside it
        self._queued_for: dict[str, str] = {}

    @property
    def has_pending_mistakes(self) -> bool:
        return len(self.retry_queue) > 0

    @property
    def mistake_count(self) -> int:
        return len(self.session_mistakes)

    def record_mistake(
        self,
        screen: LessonScreen,
        problem_name: str,
        node_index: int,
    ) -> MistakeRecord | None:
        """
        Record a failed answer on a screen.

        Returns the new record, or None when nothing was recorded: the
        screen has no assessable widget, or the same widget was the last
        one recorded (double submission).
        """
        target = find_assessable_widget(screen.widgets)
        if target is None:
            logger.debug(f"Screen {screen.id} has no assessable widget, no mistake recorded")
            return None

        last = self.session_mistakes[-1] if self.session_mistakes else None
        if last is not None and last.widget is not None and last.widget.id == target.id:
            logger.debug(f"Duplicate mistake for widget {target.id} ignored")
            return None

        record = MistakeRecord(
            problem_name=problem_name,
            node_index=node_index,
            question_type=target.type,
            context=screen.header or "Practice",
            widget=target.model_copy(deep=True),
        )
        self.session_mistakes.append(record)

        if not self._is_queued(screen, target):
            retry_screen = self._build_retry_screen(screen, target)
            self.retry_queue.append(retry_screen)
            self._queued_for[record.id] = retry_screen.id

        logger.debug(
            f"Mistake recorded on {screen.id} ({target.type}); "
            f"{len(self.session_mistakes)} total, {len(self.retry_queue)} queued"
        )
        return record

    def remove_last_mistake(self) -> MistakeRecord | None:
        """
        Drop the most recent record and its queued retry screen.

        Used only when an appeal shows the answer was right after all.
        A retry screen already spliced into the live sequence stays there.
        """
        if not self.session_mistakes:
            return None

        record = self.session_mistakes.pop()
        retry_id = self._queued_for.pop(record.id, None)
        if retry_id is not None:
            self.retry_queue = [s for s in self.retry_queue if s.id != retry_id]

        logger.debug(f"Mistake {record.id} removed after appeal")
        return record

    def start_review_loop(self) -> None:
        self.is_in_mistake_loop = True

    def clear_queue(self) -> None:
        self.retry_queue = []
        self._queued_for.clear()

    def _is_queued(self, screen: LessonScreen, target: Widget) -> bool:
        for queued in self.retry_queue:
            if queued.retry_of == screen.id:
                return True
            if queued.widgets and queued.widgets[0].id == target.id:
                return True
        return False

    @staticmethod
    def _build_retry_screen(screen: LessonScreen, target: Widget) -> LessonScreen:
        """A retry screen holds only the failed widget."""
        return LessonScreen(
            id=f"retry_{screen.id}_{short_id()}",
            header=f"Retry: {screen.header or 'Concept'}",
            widgets=[target.model_copy(deep=True)],
            is_retry=True,
            retry_of=screen.id,
        )
