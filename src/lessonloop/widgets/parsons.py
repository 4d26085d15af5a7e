"""
Parsons problem check.

The learner reorders scrambled source lines. The reference solution is the
widget's own line list; trailing inline comments and surrounding whitespace
are not part of the answer, and lines that are empty after cleaning are
dropped. Comparison is strict and ordered.
"""

import re

from . import WidgetType, register
from .base import AnswerState, Widget

_INLINE_COMMENT = re.compile(r"\s*(?:#|//).*$")


def clean_code_line(line: object) -> str:
    """Strip a trailing `#` or `//` comment and surrounding whitespace."""
    if not isinstance(line, str):
        line = "" if line is None else str(line)
    return _INLINE_COMMENT.sub("", line).strip()


def canonical_lines(lines: list) -> list[str]:
    """Clean every line, discarding lines that end up empty."""
    cleaned = (clean_code_line(line) for line in lines)
    return [line for line in cleaned if line]


@register(WidgetType.PARSONS)
def check_parsons(widget: Widget, state: AnswerState) -> bool:
    if widget.parsons is None or state.parsons_order is None:
        return False

    expected = canonical_lines(widget.parsons.lines)
    submitted = [clean_code_line(line) for line in state.parsons_order]

    if len(submitted) != len(expected):
        return False
    return all(user == ref for user, ref in zip(submitted, expected))
