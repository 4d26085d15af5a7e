"""
LessonLoop: adaptive lesson progression and mistake remediation.

Components:
- widgets: Exercise payload models and per-kind answer checks
- validator: WidgetValidator (right/wrong verdict for a widget)
- mistake_manager: Session mistake recording and retry queue
- engine: LessonEngine screen-by-screen state machine
- progression: ProgressionController (levels, skip challenge, persistence)
"""

from .engine import EngineStatus, LessonEngine
from .mistake_manager import MistakeManager
from .models import (
    ExamRecord,
    LessonPlan,
    LessonScreen,
    MistakeRecord,
    SessionPolicy,
    SessionSummary,
)
from .progression import CompletionOutcome, ControllerStatus, Problem, ProgressionController
from .provider import ContentProvider, GenerationError, GenerationRequest
from .validator import WidgetValidator
from .widgets import AnswerState, Widget, WidgetType

__all__ = [
    "AnswerState",
    "CompletionOutcome",
    "ContentProvider",
    "ControllerStatus",
    "EngineStatus",
    "ExamRecord",
    "GenerationError",
    "GenerationRequest",
    "LessonEngine",
    "LessonPlan",
    "LessonScreen",
    "MistakeManager",
    "MistakeRecord",
    "Problem",
    "ProgressionController",
    "SessionPolicy",
    "SessionSummary",
    "Widget",
    "WidgetType",
    "WidgetValidator",
]
