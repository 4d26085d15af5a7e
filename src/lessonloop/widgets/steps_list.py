"""
Step-ordering check.

Static step lists are informational and always pass. Interactive lists
compare against `correct_order` when the content provides one; without it
the only check is that every item was placed, order ignored.
"""

from . import WidgetType, register
from .base import AnswerState, Widget


@register(WidgetType.STEPS_LIST)
def check_steps_list(widget: Widget, state: AnswerState) -> bool:
    steps = widget.steps_list
    if steps is None or steps.mode != "interactive":
        return True

    if not state.steps_order:
        return False

    if steps.correct_order:
        return list(state.steps_order) == list(steps.correct_order)

    # No canonical order: count-only fallback
    return len(state.steps_order) == len(steps.items)
