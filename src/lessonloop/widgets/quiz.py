"""
Quiz (single-best-answer) check.

Correct iff the selected option index equals the defined correct index.
"""

from . import WidgetType, register
from .base import AnswerState, Widget


@register(WidgetType.QUIZ)
def check_quiz(widget: Widget, state: AnswerState) -> bool:
    if widget.quiz is None or widget.quiz.correct_index is None:
        return False
    if state.quiz_selection is None:
        return False
    return state.quiz_selection == widget.quiz.correct_index
