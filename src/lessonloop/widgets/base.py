"""
Widget payload models and learner answer state.

Widgets arrive from the content provider as camelCase JSON. Payloads for
the assessable kinds are typed; decorative payloads (dialogue, callout,
code, ...) are carried through untouched as extra fields.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import ASSESSABLE_TYPES, WidgetType, parse_widget_type


class CamelModel(BaseModel):
    """Base model accepting both camelCase (wire) and snake_case names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class QuizPayload(CamelModel):
    question: str = ""
    options: list[str] = Field(default_factory=list)
    correct_index: int | None = None
    explanation: str = ""


class ParsonsPayload(CamelModel):
    lines: list[str] = Field(default_factory=list)
    explanation: str | None = None
    indentation: bool = False


class FillInPayload(CamelModel):
    code: str = ""
    options: list[str] | None = None
    correct_values: list[str] = Field(default_factory=list)
    explanation: str | None = None
    input_mode: Literal["select", "type"] | None = None


class FlipcardPayload(CamelModel):
    front: str = ""
    back: str = ""
    hint: str | None = None
    mode: Literal["learn", "assessment"] = "learn"


class StepsListPayload(CamelModel):
    items: list[str] = Field(default_factory=list)
    mode: Literal["static", "interactive"] = "static"
    correct_order: list[str] | None = None


class VisualQuizOption(CamelModel):
    id: str
    label: str = ""
    image_url: str | None = None
    icon: str | None = None


class VisualQuizPayload(CamelModel):
    question: str = ""
    options: list[VisualQuizOption] = Field(default_factory=list)
    correct_id: str | None = None
    explanation: str = ""


class MiniEditorPayload(CamelModel):
    language: str = ""
    starting_code: str = ""
    solution_snippet: str = ""
    validation_regex: str | None = None
    task_description: str = ""


class Widget(CamelModel):
    """
    A typed exercise or content block.

    `type` is kept as free text so that kinds this version does not know
    about still load; the validator decides what to do with them.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str
    type: str
    quiz: QuizPayload | None = None
    parsons: ParsonsPayload | None = None
    fill_in: FillInPayload | None = None
    flipcard: FlipcardPayload | None = None
    steps_list: StepsListPayload | None = None
    visual_quiz: VisualQuizPayload | None = None
    mini_editor: MiniEditorPayload | None = None

    @property
    def widget_type(self) -> WidgetType | None:
        """Resolved kind, None when the type string is unrecognized."""
        return parse_widget_type(self.type)


@dataclass
class AnswerState:
    """The learner's current input for the widget on screen."""

    quiz_selection: int | None = None
    parsons_order: list[str] | None = None
    fill_in_answers: list[str] | None = None
    steps_order: list[str] | None = None
    visual_quiz_selection: str | None = None
    mini_editor_valid: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def is_assessable(widget: Widget) -> bool:
    """Check if a widget can produce a right/wrong verdict."""
    widget_type = widget.widget_type
    if widget_type in ASSESSABLE_TYPES:
        return True
    return (
        widget_type is WidgetType.FLIPCARD
        and widget.flipcard is not None
        and widget.flipcard.mode == "assessment"
    )


def find_assessable_widget(widgets: list[Widget]) -> Widget | None:
    """First assessable widget in display order, None for informational screens."""
    for widget in widgets:
        if is_assessable(widget):
            return widget
    return None
