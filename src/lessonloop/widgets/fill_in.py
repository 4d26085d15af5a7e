"""
Fill-in-the-blank check.

Blank counts must match; each blank is compared trimmed and
case-insensitively.
"""

from . import WidgetType, register
from .base import AnswerState, Widget


def _normalize(value: object) -> str:
    return str(value if value is not None else "").strip().lower()


@register(WidgetType.FILL_IN)
def check_fill_in(widget: Widget, state: AnswerState) -> bool:
    if widget.fill_in is None or state.fill_in_answers is None:
        return False

    expected = widget.fill_in.correct_values
    answers = state.fill_in_answers
    if len(answers) != len(expected):
        return False

    return all(
        _normalize(actual) == _normalize(want)
        for actual, want in zip(answers, expected)
    )
