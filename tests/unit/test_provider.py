"""
Unit tests for lesson plan parsing and the Gemini content provider.
"""

import json

import httpx
import pytest

from src.lessonloop.provider import (
    GeminiContentProvider,
    GenerationError,
    GenerationRequest,
    build_lesson_prompt,
    parse_lesson_plan,
)


@pytest.fixture
def request_params():
    return GenerationRequest(
        problem_id="two-sum",
        problem_name="Two Sum",
        phase_index=2,
        recent_mistakes=("quiz (Complements)",),
        history=("Two Sum: Intro",),
    )


def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestParseLessonPlan:
    """Test provider text parsing."""

    def test_plain_json(self, sample_plan_json):
        plan = parse_lesson_plan(json.dumps(sample_plan_json))

        assert plan.title == "Two Sum"
        assert [s.id for s in plan.screens] == ["s1", "s2"]
        assert plan.screens[0].widgets[1].quiz.correct_index == 0
        assert plan.suggested_questions == ["Why a hash map?"]

    def test_fenced_json(self, sample_plan_json):
        text = f"```json\n{json.dumps(sample_plan_json)}\n```"
        assert parse_lesson_plan(text).title == "Two Sum"

    def test_decorative_payload_kept(self, sample_plan_json):
        plan = parse_lesson_plan(json.dumps(sample_plan_json))
        assert plan.screens[0].widgets[0].model_extra["dialogue"] == {"text": "Hi"}

    def test_invalid_json(self):
        with pytest.raises(GenerationError) as exc_info:
            parse_lesson_plan("{not json")

        assert exc_info.value.message == "JSON Parse Error"
        assert exc_info.value.raw_output == "{not json"

    def test_empty(self):
        with pytest.raises(GenerationError):
            parse_lesson_plan("   ")

    def test_wrong_shape(self):
        with pytest.raises(GenerationError) as exc_info:
            parse_lesson_plan(json.dumps({"screens": []}))
        assert "Invalid lesson plan" in exc_info.value.message

    def test_no_screens(self):
        with pytest.raises(GenerationError):
            parse_lesson_plan(json.dumps({"title": "Empty", "screens": []}))


class TestBuildPrompt:
    """Test prompt assembly."""

    def test_includes_context(self, request_params):
        system, prompt = build_lesson_prompt(request_params)

        assert "Two Sum" in system
        assert "Workout" in system
        assert "Phase 3" in prompt
        assert "quiz (Complements)" in prompt
        assert "Two Sum: Intro" in prompt

    def test_skip_attempt_flagged(self, request_params):
        skip = GenerationRequest(problem_id="two-sum", problem_name="Two Sum", phase_index=5, is_skip_attempt=True)
        system, _ = build_lesson_prompt(skip)
        assert "skip challenge" in system


class TestGeminiContentProvider:
    """Test the HTTP client against a mock transport."""

    @pytest.mark.asyncio
    async def test_generate_success(self, request_params, sample_plan_json):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_body(json.dumps(sample_plan_json)))

        async with GeminiContentProvider(
            api_key="test-key", transport=httpx.MockTransport(handler)
        ) as provider:
            plan = await provider.generate(request_params)

        assert plan.title == "Two Sum"
        assert "/models/gemini-2.0-flash:generateContent" in seen["url"]
        assert "key=test-key" in seen["url"]
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_http_error(self, request_params):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="overloaded"))
        provider = GeminiContentProvider(api_key="k", transport=transport)

        with pytest.raises(GenerationError) as exc_info:
            await provider.generate(request_params)
        await provider.close()

        assert "503" in exc_info.value.message
        assert exc_info.value.raw_output == "overloaded"

    @pytest.mark.asyncio
    async def test_connection_error(self, request_params):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = GeminiContentProvider(api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(GenerationError) as exc_info:
            await provider.generate(request_params)
        await provider.close()

        assert "Connection error" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, request_params):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []}))
        provider = GeminiContentProvider(api_key="k", transport=transport)

        with pytest.raises(GenerationError):
            await provider.generate(request_params)
        await provider.close()

    @pytest.mark.asyncio
    async def test_bad_json_in_text(self, request_params):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=gemini_body("nope")))
        provider = GeminiContentProvider(api_key="k", transport=transport)

        with pytest.raises(GenerationError) as exc_info:
            await provider.generate(request_params)
        await provider.close()

        assert exc_info.value.message == "JSON Parse Error"

    @pytest.mark.asyncio
    async def test_missing_api_key(self, request_params):
        with pytest.raises(GenerationError):
            await GeminiContentProvider(api_key=None).generate(request_params)
