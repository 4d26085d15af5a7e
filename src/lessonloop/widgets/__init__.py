"""
Widget kinds for LessonLoop lesson screens.

Each assessable widget kind has its own module with a check function
registered through @register. Kinds without a registered check are
interaction-driven (decorative content, self-graded cards) and are
handled explicitly by the WidgetValidator.
"""

from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .base import AnswerState, Widget


class WidgetType(str, Enum):
    """Widget kinds produced by the content provider."""
    QUIZ = "quiz"
    PARSONS = "parsons"
    FILL_IN = "fill-in"
    FLIPCARD = "flipcard"
    STEPS_LIST = "steps-list"
    LEETCODE = "leetcode"
    INTERACTIVE_CODE = "interactive-code"
    TERMINAL = "terminal"
    MINI_EDITOR = "mini-editor"
    VISUAL_QUIZ = "visual-quiz"
    CODE_WALKTHROUGH = "code-walkthrough"
    # Decorative content
    DIALOGUE = "dialogue"
    CALLOUT = "callout"
    CODE = "code"
    COMPARISON_CODE = "comparison-code"
    COMPARISON_TABLE = "comparison-table"
    MERMAID = "mermaid"
    ARCH_CANVAS = "arch-canvas"


# Kinds that can produce a right/wrong verdict and therefore a mistake.
# Flipcards only count in assessment mode (see is_assessable).
ASSESSABLE_TYPES = frozenset({
    WidgetType.QUIZ,
    WidgetType.PARSONS,
    WidgetType.FILL_IN,
    WidgetType.INTERACTIVE_CODE,
    WidgetType.LEETCODE,
    WidgetType.STEPS_LIST,
    WidgetType.TERMINAL,
    WidgetType.MINI_EDITOR,
    WidgetType.VISUAL_QUIZ,
    WidgetType.CODE_WALKTHROUGH,
})


CheckFn = Callable[["Widget", "AnswerState"], bool]

# Check registry - populated by @register decorator
CHECKS: dict[WidgetType, CheckFn] = {}


def register(widget_type: WidgetType):
    """Decorator to register an answer check for a widget kind."""
    def decorator(fn: CheckFn) -> CheckFn:
        CHECKS[widget_type] = fn
        return fn
    return decorator


def parse_widget_type(value: str | WidgetType) -> WidgetType | None:
    """Resolve a type string to a WidgetType, None if unrecognized."""
    if isinstance(value, WidgetType):
        return value
    try:
        return WidgetType(value.strip().lower())
    except (ValueError, AttributeError):
        return None


def get_check(widget_type: str | WidgetType) -> CheckFn | None:
    """Get the registered check for a widget kind."""
    resolved = parse_widget_type(widget_type)
    if resolved is None:
        return None
    return CHECKS.get(resolved)


from .base import (  # noqa: E402
    AnswerState,
    FillInPayload,
    FlipcardPayload,
    MiniEditorPayload,
    ParsonsPayload,
    QuizPayload,
    StepsListPayload,
    VisualQuizPayload,
    Widget,
    find_assessable_widget,
    is_assessable,
)

# Import check modules to trigger registration
from . import quiz  # noqa: E402
from . import parsons  # noqa: E402
from . import fill_in  # noqa: E402
from . import steps_list  # noqa: E402
from . import visual_quiz  # noqa: E402
from . import mini_editor  # noqa: E402

__all__ = [
    "ASSESSABLE_TYPES",
    "AnswerState",
    "CHECKS",
    "FillInPayload",
    "FlipcardPayload",
    "MiniEditorPayload",
    "ParsonsPayload",
    "QuizPayload",
    "StepsListPayload",
    "VisualQuizPayload",
    "Widget",
    "WidgetType",
    "find_assessable_widget",
    "get_check",
    "is_assessable",
    "parse_widget_type",
    "register",
]
