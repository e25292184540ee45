from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from quizvault.core.models import AiSettings, CreationMode, Viewer, ViewerRole
from quizvault.core.quiz_manager import QuizManager
from quizvault.core.services.quiz_store import QuizStore
from quizvault.utils.settings import EngineSettings

TEACHER = Viewer("teacher-1", ViewerRole.TEACHER)
OTHER_TEACHER = Viewer("teacher-2", ViewerRole.TEACHER)
STUDENT = Viewer("student-1", ViewerRole.STUDENT)
OTHER_STUDENT = Viewer("student-2", ViewerRole.STUDENT)


def mcq_payload(text: str = "What is 2 + 2?", correct: int = 2, marks: int = 1) -> dict[str, Any]:
    return {
        "questionType": "mcq",
        "questionText": text,
        "marks": marks,
        "options": ["1", "2", "4", "5"],
        "correctOption": correct,
    }


def fill_blank_payload(blanks: list[str] | None = None, marks: int = 1) -> dict[str, Any]:
    return {
        "questionType": "fillblank",
        "questionText": "The capital of France is _____.",
        "marks": marks,
        "blanks": blanks or ["Paris"],
    }


def matching_payload(marks: int = 2) -> dict[str, Any]:
    return {
        "questionType": "matching",
        "questionText": "Match each country to its capital.",
        "marks": marks,
        "matchPairs": [
            {"left": "France", "right": "Paris"},
            {"left": "Japan", "right": "Tokyo"},
            {"left": "Kenya", "right": "Nairobi"},
        ],
    }


def written_payload(marks: int = 3) -> dict[str, Any]:
    return {
        "questionType": "written",
        "questionText": "Explain photosynthesis briefly.",
        "marks": marks,
        "correctAnswer": "Plants turn light into chemical energy.",
    }


def true_false_payload(correct: int = 0, marks: int = 1) -> dict[str, Any]:
    return {
        "questionType": "truefalse",
        "questionText": "Water boils at 100C at sea level.",
        "marks": marks,
        "correctOption": correct,
    }


class FakeGenerator:
    """Stand-in for the AI generator: canned MCQ items, an error, or a slow reply."""

    def __init__(self, marks: int = 2, error: Exception | None = None, delay: float = 0.0) -> None:
        self.marks = marks
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, int, str]] = []
        self._lock = threading.Lock()
        self._batch = 0

    def generate(self, topic: str, count: int, difficulty: str) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append((topic, count, difficulty))
            self._batch += 1
            batch = self._batch
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [
            mcq_payload(text=f"{topic} question {batch}.{index + 1}?", correct=index % 4, marks=self.marks)
            for index in range(count)
        ]


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(grading_secret="test-grading-secret", ai_timeout_seconds=1.0)


@pytest.fixture
def store() -> QuizStore:
    return QuizStore()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def manager(store: QuizStore, generator: FakeGenerator, settings: EngineSettings):
    quiz_manager = QuizManager(store=store, generator=generator, settings=settings)
    yield quiz_manager
    quiz_manager.shutdown()


@pytest.fixture
def manual_quiz(manager: QuizManager):
    """Manual quiz assigned to STUDENT with one MCQ (marks=1, correctOption=2)."""
    quiz = manager.create_quiz(
        TEACHER,
        title="Arithmetic basics",
        duration_minutes=10,
        assigned_to=STUDENT.viewer_id,
    )
    outcome = manager.add_questions(quiz.id, TEACHER, [mcq_payload()])
    return quiz, outcome.questions[0]


@pytest.fixture
def ai_quiz(manager: QuizManager):
    return manager.create_quiz(
        TEACHER,
        title="Generated history quiz",
        duration_minutes=15,
        audience=[STUDENT.viewer_id, OTHER_STUDENT.viewer_id],
        creation_mode=CreationMode.AI,
        ai_settings=AiSettings(topic="Roman history", question_count=3, difficulty="medium"),
    )