"""
Lesson content provider.

The provider turns a GenerationRequest into a LessonPlan or raises
GenerationError. The controller treats it as a black box; the bundled
GeminiContentProvider talks to the Gemini REST API over httpx.

Usage:
    async with GeminiContentProvider(api_key="...") as provider:
        plan = await provider.generate(request)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError

from src.lessonloop.models import LessonPlan

PHASE_NAMES = (
    "Intro",
    "Basics",
    "Workout",
    "Deep Dive",
    "Review",
    "Mastery",
)

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?|\n?```")


class GenerationError(Exception):
    """Content generation failed. Retry with the identical request."""

    def __init__(self, message: str, raw_output: str | None = None):
        super().__init__(message)
        self.message = message
        self.raw_output = raw_output


@dataclass(frozen=True)
class GenerationRequest:
    """Everything the provider needs for one lesson. Immutable so a retry is identical."""

    problem_id: str
    problem_name: str
    phase_index: int
    language: str = "Python"
    spoken_language: str = "English"
    recent_mistakes: tuple[str, ...] = ()
    history: tuple[str, ...] = ()
    is_skip_attempt: bool = False


class ContentProvider(Protocol):
    """Anything that can produce a LessonPlan for a request."""

    async def generate(self, request: GenerationRequest) -> LessonPlan:
        ...


def build_lesson_prompt(request: GenerationRequest) -> tuple[str, str]:
    """Return (system_instruction, user_prompt) for a lesson request."""
    phase_name = (
        PHASE_NAMES[request.phase_index]
        if 0 <= request.phase_index < len(PHASE_NAMES)
        else f"Phase {request.phase_index + 1}"
    )

    system = (
        f"You are a programming coach building a gamified lesson about '{request.problem_name}' "
        f"in {request.language}. Explain in {request.spoken_language}. "
        f"This is the {phase_name} phase. Respond with JSON only: "
        '{"title": str, "description": str, "screens": [{"id": str, "header": str, '
        '"widgets": [{"id": str, "type": str, ...}]}], "suggestedQuestions": [str]}. '
        "Each screen has at most one interactive widget."
    )
    if request.is_skip_attempt:
        system += " This is a skip challenge: only assessment screens, no teaching dialogue."

    prompt = f"Generate the lesson plan for Phase {request.phase_index + 1} of {request.problem_name}."
    if request.recent_mistakes:
        prompt += (
            "\nContext: The user previously struggled with: "
            f"{', '.join(request.recent_mistakes)}. Please reinforce these concepts."
        )
    if request.history:
        prompt += f"\nLessons already completed: {', '.join(request.history)}."
    return system, prompt


def parse_lesson_plan(text: str) -> LessonPlan:
    """Parse provider text (optionally fenced in ```json) into a LessonPlan."""
    if not text or not text.strip():
        raise GenerationError("Empty response from AI", text)

    cleaned = _CODE_FENCE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GenerationError("JSON Parse Error", text) from e

    try:
        plan = LessonPlan.model_validate(data)
    except ValidationError as e:
        raise GenerationError(f"Invalid lesson plan: {e.error_count()} error(s)", text) from e

    if not plan.screens:
        raise GenerationError("Lesson plan has no screens", text)
    return plan


class GeminiContentProvider:
    """
    Gemini REST client producing LessonPlans.

    Supports:
    - JSON response mode (responseMimeType)
    - Fenced/unfenced JSON in the returned text
    - Typed GenerationError for HTTP, transport and parse failures
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GeminiContentProvider":
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def generate(self, request: GenerationRequest) -> LessonPlan:
        if not self.api_key:
            raise GenerationError("No API key configured")

        system, prompt = build_lesson_prompt(request)
        body = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        logger.info(
            f"Generating phase {request.phase_index} of '{request.problem_name}' "
            f"({request.language}, skip={request.is_skip_attempt})"
        )

        try:
            client = await self._ensure_client()
            response = await client.post(
                f"/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=body,
            )
        except httpx.RequestError as e:
            logger.error(f"Connection error generating lesson: {e}")
            raise GenerationError(f"Connection error: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Generation failed: HTTP {response.status_code}")
            raise GenerationError(f"Provider returned HTTP {response.status_code}", response.text)

        text = self._extract_text(response)
        return parse_lesson_plan(text)

    @staticmethod
    def _extract_text(response: httpx.Response) -> str:
        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError("Unexpected provider response shape", response.text) from e
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
