"""
Widget answer validation.

WidgetValidator turns a widget plus the learner's answer state into a
right/wrong verdict. It is total: malformed payloads count as wrong for
assessable kinds and never raise.
"""

from __future__ import annotations

from loguru import logger

from src.lessonloop.widgets import CHECKS, AnswerState, Widget, WidgetType

# Known kinds with no wrong-answer state. Their outcome comes from the
# caller's own interaction event (flip buttons, terminal output, ...).
INTERACTION_DRIVEN_TYPES = frozenset({
    WidgetType.FLIPCARD,
    WidgetType.LEETCODE,
    WidgetType.INTERACTIVE_CODE,
    WidgetType.TERMINAL,
    WidgetType.CODE_WALKTHROUGH,
    WidgetType.DIALOGUE,
    WidgetType.CALLOUT,
    WidgetType.CODE,
    WidgetType.COMPARISON_CODE,
    WidgetType.COMPARISON_TABLE,
    WidgetType.MERMAID,
    WidgetType.ARCH_CANVAS,
})


class WidgetValidator:
    """Decide correct/incorrect for a widget given the learner's answer."""

    def validate(self, widget: Widget | None, state: AnswerState | None = None) -> bool:
        if widget is None:
            return True
        state = state or AnswerState()

        widget_type = widget.widget_type

        if widget_type is None:
            # Unknown kinds pass so newer content never blocks a lesson.
            logger.debug(f"Unknown widget type '{widget.type}' on {widget.id}, passing")
            return True

        if widget_type in INTERACTION_DRIVEN_TYPES:
            return True

        check = CHECKS.get(widget_type)
        if check is None:
            logger.warning(f"No check registered for {widget_type.value}, passing")
            return True

        try:
            return bool(check(widget, state))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Check for {widget_type.value} widget {widget.id} failed: {e}")
            return False


def validate(widget: Widget | None, state: AnswerState | None = None) -> bool:
    """Module-level shortcut for a default WidgetValidator."""
    return _default_validator.validate(widget, state)


_default_validator = WidgetValidator()
