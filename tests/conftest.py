"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.lessonloop.models import LessonPlan, LessonScreen  # noqa: E402
from src.lessonloop.widgets import Widget  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


def quiz_widget(widget_id: str = "w-quiz", correct_index: int = 1) -> Widget:
    return Widget.model_validate({
        "id": widget_id,
        "type": "quiz",
        "quiz": {
            "question": "What does len([1, 2, 3]) return?",
            "options": ["2", "3", "4"],
            "correctIndex": correct_index,
        },
    })


def dialogue_widget(widget_id: str = "w-dialogue") -> Widget:
    return Widget.model_validate({
        "id": widget_id,
        "type": "dialogue",
        "dialogue": {"speaker": "Coach", "text": "Let's warm up."},
    })


def quiz_screen(screen_id: str, header: str | None = None) -> LessonScreen:
    """A screen with a decorative widget followed by one quiz."""
    return LessonScreen(
        id=screen_id,
        header=header or f"Concept {screen_id}",
        widgets=[dialogue_widget(f"{screen_id}-intro"), quiz_widget(f"{screen_id}-quiz")],
    )


def make_plan(count: int = 3, title: str = "Two Sum") -> LessonPlan:
    return LessonPlan(
        title=title,
        description="Hash map lookups",
        screens=[quiz_screen(f"s{i}") for i in range(1, count + 1)],
    )


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def sample_plan():
    """Provide a three-screen quiz lesson for testing."""
    return make_plan(3)


@pytest.fixture
def sample_plan_json():
    """Provider-shaped lesson plan JSON (camelCase)."""
    return {
        "title": "Two Sum",
        "description": "Hash map lookups",
        "screens": [
            {
                "id": "s1",
                "header": "Complements",
                "widgets": [
                    {"id": "d1", "type": "dialogue", "dialogue": {"text": "Hi"}},
                    {
                        "id": "q1",
                        "type": "quiz",
                        "quiz": {"question": "?", "options": ["a", "b"], "correctIndex": 0},
                    },
                ],
            },
            {
                "id": "s2",
                "header": "Ordering",
                "widgets": [
                    {
                        "id": "p1",
                        "type": "parsons",
                        "parsons": {"lines": ["seen = {}", "for i, n in enumerate(nums):"]},
                    },
                ],
            },
        ],
        "suggestedQuestions": ["Why a hash map?"],
    }


@pytest.fixture
def make_quiz():
    """Factory for quiz widgets."""
    return quiz_widget


@pytest.fixture
def make_screen():
    """Factory for dialogue + quiz screens."""
    return quiz_screen


@pytest.fixture
def make_plan_factory():
    """Factory for quiz-only lesson plans of a given length."""
    return make_plan
