"""AI question generator boundary.

The engine treats the model as a black box with one call,
`generate(topic, count, difficulty) -> list[dict]`. Whatever it returns is
untrusted until the question parser has validated every item.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import requests

from quizvault.constants.network_constants import (
    AI_GENERATION_TIMEOUT_SECONDS,
    DEFAULT_GEMINI_MODEL,
    GEMINI_API_BASE_URL,
)
from quizvault.constants.quiz_constants import DIFFICULTY_NOMINAL_MARKS, TRUE_FALSE_OPTIONS
from quizvault.core.errors import UpstreamFailureError

logger = logging.getLogger(__name__)


class QuestionGenerator(Protocol):
    def generate(self, topic: str, count: int, difficulty: str) -> list[dict[str, Any]]:
        ...


_TYPE_DESCRIPTIONS = {
    "mcq": (
        '"questionType": "mcq", "questionText": "...", '
        '"options": ["A", "B", "C", "D"], "correctOption": 0-3, "marks": n'
    ),
    "written": '"questionType": "written", "questionText": "...", "correctAnswer": "...", "marks": n',
    "fillblank": (
        '"questionType": "fillblank", "questionText": "text with _____ per blank", '
        '"blanks": ["answer1", ...], "marks": n'
    ),
    "matching": (
        '"questionType": "matching", "questionText": "Match the following:", '
        '"matchPairs": [{"left": "...", "right": "..."}, ...], "marks": n'
    ),
    "truefalse": (
        '"questionType": "truefalse", "questionText": "statement", '
        '"options": ["True", "False"], "correctOption": 0 or 1, "marks": n'
    ),
}


def build_prompt(topic: str, count: int, difficulty: str, question_types: tuple[str, ...]) -> str:
    marks = DIFFICULTY_NOMINAL_MARKS.get(difficulty, 1)
    shapes = "\n".join(f"- {{{_TYPE_DESCRIPTIONS[t]}}}" for t in question_types)
    return (
        f'Generate {count} quiz questions about "{topic}" at {difficulty} difficulty.\n'
        f"Use a mix of these question types: {', '.join(question_types)}.\n"
        f"Each question is a JSON object shaped like one of:\n{shapes}\n"
        f"Rules:\n"
        f"- marks is {marks} for every question\n"
        f"- MCQ questions have exactly 4 options and one correct answer\n"
        f"- matching questions have 4-6 pairs\n"
        f"- questions are clear and unambiguous\n"
        f"Return ONLY a JSON array, with no markdown and no commentary."
    )


def extract_json_array(text: str) -> list[Any]:
    """Pull the JSON array out of a model reply, tolerating code fences and chatter."""
    s = (text or "").strip()
    if not s:
        raise UpstreamFailureError("Generator returned an empty response.")
    start = s.find("[")
    end = s.rfind("]")
    if start == -1 or end == -1 or end <= start:
        raise UpstreamFailureError("Generator response contained no JSON array.")
    try:
        parsed = json.loads(s[start : end + 1])
    except json.JSONDecodeError as exc:
        raise UpstreamFailureError(f"Generator returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, list):
        raise UpstreamFailureError("Generator response is not an array.")
    return parsed


class GeminiQuestionGenerator:
    """Calls the Gemini `generateContent` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_seconds: float = AI_GENERATION_TIMEOUT_SECONDS,
        question_types: tuple[str, ...] = ("mcq",),
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Gemini API key is required.")
        unknown = [t for t in question_types if t not in _TYPE_DESCRIPTIONS]
        if unknown:
            raise ValueError(f"Unknown question types: {', '.join(unknown)}")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._question_types = question_types
        self._session = session or requests.Session()

    def generate(self, topic: str, count: int, difficulty: str) -> list[dict[str, Any]]:
        prompt = build_prompt(topic, count, difficulty, self._question_types)
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.7, "responseMimeType": "application/json"},
        }
        url = f"{GEMINI_API_BASE_URL}/models/{self._model}:generateContent"
        try:
            response = self._session.post(
                url,
                params={"key": self._api_key},
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamFailureError(f"Gemini request failed: {exc}") from exc
        if response.status_code != 200:
            raise UpstreamFailureError(f"Gemini generateContent failed with status {response.status_code}.")

        text = _first_candidate_text(response.json())
        items = extract_json_array(text)
        logger.info("Gemini produced %d questions for topic %r", len(items), topic)
        return [_normalize_item(item) for item in items]


def _first_candidate_text(data: object) -> str:
    if isinstance(data, dict) and isinstance(data.get("candidates"), list) and data["candidates"]:
        content = data["candidates"][0].get("content") if isinstance(data["candidates"][0], dict) else None
        if isinstance(content, dict) and isinstance(content.get("parts"), list) and content["parts"]:
            part = content["parts"][0]
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                return part["text"]
    raise UpstreamFailureError("Gemini returned no candidate text.")


def _normalize_item(item: object) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise UpstreamFailureError("Generator item is not an object.")
    if item.get("questionType") == "truefalse":
        item = {**item, "options": list(TRUE_FALSE_OPTIONS)}
    return item
