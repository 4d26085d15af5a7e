"""Visual quiz check: the selected option id must equal the correct id."""

from . import WidgetType, register
from .base import AnswerState, Widget


@register(WidgetType.VISUAL_QUIZ)
def check_visual_quiz(widget: Widget, state: AnswerState) -> bool:
    if widget.visual_quiz is None or widget.visual_quiz.correct_id is None:
        return False
    return state.visual_quiz_selection == widget.visual_quiz.correct_id
