"""
Mini editor check.

The editor runs its own validation (regex or reference snippet) while the
learner types; the verdict arrives in the answer state.
"""

from . import WidgetType, register
from .base import AnswerState, Widget


@register(WidgetType.MINI_EDITOR)
def check_mini_editor(widget: Widget, state: AnswerState) -> bool:
    return bool(state.mini_editor_valid)
