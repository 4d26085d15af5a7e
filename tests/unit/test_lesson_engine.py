"""
Unit tests for the LessonEngine state machine.
"""

import pytest

from src.lessonloop.engine import EngineStatus, LessonEngine
from src.lessonloop.models import LessonPlan, LessonScreen, SessionPolicy
from src.lessonloop.widgets import AnswerState, Widget


def run_through(engine: LessonEngine, verdicts: list[bool]) -> None:
    """Answer each screen in turn and advance."""
    for verdict in verdicts:
        engine.check_answer(verdict)
        engine.next_screen()


class TestAnswering:
    """Test verdict transitions."""

    @pytest.fixture
    def engine(self, sample_plan):
        return LessonEngine(sample_plan, node_index=1, problem_name="Two Sum")

    def test_correct_credits_streak_and_xp(self, engine):
        assert engine.check_answer(True) is EngineStatus.CORRECT
        assert engine.streak == 1
        assert engine.xp_gained == 10
        assert engine.correct_count == 1

    def test_wrong_resets_streak_and_records(self, engine):
        engine.check_answer(True)
        engine.next_screen()
        assert engine.check_answer(False) is EngineStatus.WRONG

        assert engine.streak == 0
        assert engine.xp_gained == 10
        assert engine.mistake_count == 1
        assert engine.session_mistakes[0].node_index == 1

    def test_verdict_only_from_idle(self, engine):
        engine.check_answer(False)
        engine.check_answer(True)

        assert engine.status is EngineStatus.WRONG
        assert engine.xp_gained == 0

    def test_retry_current_resets_status(self, engine):
        engine.check_answer(False)
        engine.retry_current()
        engine.check_answer(True)

        assert engine.status is EngineStatus.CORRECT
        assert engine.current_index == 0

    def test_custom_xp_reward(self, sample_plan):
        engine = LessonEngine(sample_plan, xp_per_correct=25)
        engine.check_answer(True)
        assert engine.xp_gained == 25

    def test_submit_answer_validates(self, engine):
        assert engine.submit_answer(AnswerState(quiz_selection=1)) is True
        assert engine.status is EngineStatus.CORRECT

    def test_submit_answer_wrong(self, engine):
        assert engine.submit_answer(AnswerState(quiz_selection=0)) is False
        assert engine.mistake_count == 1

    def test_submit_answer_informational_screen(self):
        plan = LessonPlan(title="Intro", screens=[
            LessonScreen(id="info", widgets=[Widget(id="d", type="dialogue")]),
        ])
        engine = LessonEngine(plan)

        assert engine.submit_answer(AnswerState()) is None
        assert engine.status is EngineStatus.IDLE


class TestNavigation:
    """Test advancing and finishing."""

    def test_clean_run_finishes(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [True, True, True])

        assert engine.is_finished is True
        assert engine.current_index == 3
        assert engine.current_screen is None
        assert engine.is_in_mistake_loop is False

    def test_next_resets_status(self, sample_plan):
        engine = LessonEngine(sample_plan)
        engine.check_answer(True)
        engine.next_screen()

        assert engine.status is EngineStatus.IDLE
        assert engine.current_index == 1

    def test_next_after_finish_is_noop(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [True, True, True])
        engine.next_screen()

        assert engine.current_index == 3

    def test_replace_current_screen(self, sample_plan, make_screen):
        engine = LessonEngine(sample_plan)
        engine.check_answer(False)
        engine.replace_current_screen(make_screen("fresh"))

        assert engine.current_screen.id == "fresh"
        assert engine.status is EngineStatus.IDLE
        assert engine.total_screens == 3


class TestMistakeLoop:
    """Test remedial loop splicing."""

    def test_loop_entered_at_end(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [False, True, True])

        assert engine.is_finished is False
        assert engine.is_in_mistake_loop is True
        assert engine.total_screens == 4
        assert engine.current_index == 3
        assert engine.current_screen.is_retry is True
        assert engine.current_screen.retry_of == "s1"

    def test_loop_completes(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [False, True, True, True])

        assert engine.is_finished is True
        assert engine.current_index == 4

    def test_wrong_in_loop_appends_clone(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [False, True, True])
        retry_id = engine.current_screen.id

        engine.check_answer(False)

        assert engine.total_screens == 5
        assert engine.screens[4].id.startswith(f"{retry_id}_retry_")
        assert engine.mistake_count == 1

        engine.next_screen()
        assert engine.current_index == 4
        engine.check_answer(True)
        engine.next_screen()
        assert engine.is_finished is True

    def test_sequence_only_grows(self, sample_plan):
        engine = LessonEngine(sample_plan)
        original_ids = [s.id for s in engine.screens]
        run_through(engine, [False, False, True, False])

        assert [s.id for s in engine.screens[:3]] == original_ids
        assert engine.total_screens == 6

    def test_review_mode_without_loop_finishes(self, sample_plan):
        engine = LessonEngine(sample_plan, policy=SessionPolicy(is_review_mode=True))
        run_through(engine, [True, True, False])

        assert engine.mistake_count == 1
        assert engine.is_finished is True
        assert engine.is_in_mistake_loop is False
        assert engine.total_screens == 3

    def test_review_mode_with_loop_allowed(self, sample_plan):
        policy = SessionPolicy(is_review_mode=True, allow_mistake_loop=True)
        engine = LessonEngine(sample_plan, policy=policy)
        run_through(engine, [True, True, False])

        assert engine.is_in_mistake_loop is True
        assert engine.total_screens == 4


class TestMistakeGate:
    """Test the max-mistakes threshold."""

    def test_gate_blocks_on_final_screen(self, sample_plan):
        engine = LessonEngine(sample_plan, policy=SessionPolicy(max_mistakes=2))
        run_through(engine, [False, False])
        engine.check_answer(False)
        engine.next_screen()

        assert engine.mistake_count == 3
        assert engine.is_failed is True
        assert engine.current_index == 2

        engine.next_screen()
        assert engine.current_index == 2

    def test_at_threshold_not_failed(self, sample_plan):
        engine = LessonEngine(sample_plan, policy=SessionPolicy(max_mistakes=2))
        run_through(engine, [False, False, True])

        assert engine.is_failed is False
        assert engine.is_in_mistake_loop is True

    def test_continue_as_practice_disables_gate(self, sample_plan):
        engine = LessonEngine(sample_plan, policy=SessionPolicy(max_mistakes=2))
        run_through(engine, [False, False])
        engine.check_answer(False)
        engine.next_screen()
        assert engine.is_failed is True

        engine.continue_as_practice()
        engine.next_screen()

        assert engine.is_failed is False
        assert engine.is_limit_disabled is True
        assert engine.is_in_mistake_loop is True

        # Further mistakes never re-trip the gate this session
        while not engine.is_finished:
            engine.check_answer(engine.current_index > 6)
            engine.next_screen()
            assert engine.is_failed is False

    def test_no_threshold_never_fails(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [False, False, False])

        assert engine.is_failed is False


class TestExamMode:
    """Test exam-mode answers."""

    @pytest.fixture
    def engine(self, sample_plan):
        return LessonEngine(sample_plan, policy=SessionPolicy(is_exam=True, max_mistakes=0))

    def test_always_advances(self, engine):
        engine.submit_exam_answer(False, {"choice": 0})
        assert engine.current_index == 1
        engine.submit_exam_answer(True)
        assert engine.current_index == 2

    def test_last_answer_finishes_without_loop(self, engine):
        engine.submit_exam_answer(False)
        engine.submit_exam_answer(False)
        engine.submit_exam_answer(True)

        assert engine.is_finished is True
        assert engine.is_failed is False
        assert engine.is_in_mistake_loop is False
        assert engine.current_index == 3

    def test_records_results_and_mistakes(self, engine):
        engine.submit_exam_answer(False, {"choice": 0})
        engine.submit_exam_answer(True, {"choice": 1})

        assert [(r.screen_index, r.is_correct) for r in engine.exam_results] == [(0, False), (1, True)]
        assert engine.exam_results[0].user_state == {"choice": 0}
        assert engine.mistake_count == 1
        assert engine.xp_gained == 10

    def test_submit_answer_routes_to_exam(self, engine):
        engine.submit_answer(AnswerState(quiz_selection=1))

        assert engine.current_index == 1
        assert engine.exam_results[0].is_correct is True
        assert engine.exam_results[0].user_state["quiz_selection"] == 1


class TestRectifyMistake:
    """Test appeal handling."""

    def test_credits_and_removes_one_record(self, sample_plan):
        engine = LessonEngine(sample_plan)
        engine.check_answer(False)
        engine.next_screen()
        engine.check_answer(False)

        assert engine.rectify_mistake() is True
        assert engine.status is EngineStatus.CORRECT
        assert engine.streak == 1
        assert engine.xp_gained == 10
        assert engine.mistake_count == 1
        assert engine.session_mistakes[0].widget.id == "s1-quiz"
        assert [s.retry_of for s in engine.mistakes.retry_queue] == ["s1"]

    def test_requires_wrong_status(self, sample_plan):
        engine = LessonEngine(sample_plan)
        assert engine.rectify_mistake() is False

        engine.check_answer(True)
        assert engine.rectify_mistake() is False
        assert engine.xp_gained == 10

    def test_in_loop_removes_most_recent_record(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [False, True, True])
        engine.check_answer(False)

        assert engine.rectify_mistake() is True
        assert engine.mistake_count == 0
        assert engine.xp_gained == 30

    def test_after_double_submission_removes_one_record(self, sample_plan):
        engine = LessonEngine(sample_plan)
        engine.check_answer(False)
        engine.retry_current()
        engine.check_answer(False)
        assert engine.mistake_count == 1

        assert engine.rectify_mistake() is True
        assert engine.mistake_count == 0
        assert engine.mistakes.retry_queue == []


class TestSummary:
    """Test the session summary."""

    def test_summary_fields(self, sample_plan):
        engine = LessonEngine(sample_plan)
        run_through(engine, [True, False, True, True])
        summary = engine.summary()

        assert summary.finished is True
        assert summary.failed is False
        assert summary.xp == 30
        assert summary.streak == 2
        assert summary.mistake_count == 1
        assert summary.total_screens == 4
        assert summary.correct_count == 3
        assert summary.elapsed_seconds >= 0

    def test_to_dict_serializes_mistakes(self, sample_plan):
        engine = LessonEngine(sample_plan)
        engine.check_answer(False)
        data = engine.summary().to_dict()

        assert data["mistakes"][0]["questionType"] == "quiz"
        assert data["mistakes"][0]["widget"]["id"] == "s1-quiz"
