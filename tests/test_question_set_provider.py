from __future__ import annotations

import random

import pytest

from conftest import STUDENT, TEACHER, FakeGenerator, mcq_payload
from quizvault.core.errors import InvalidStateError, UpstreamFailureError
from quizvault.core.models import AiSettings, Assignment, CreationMode, Quiz
from quizvault.core.question_parser import parse_question
from quizvault.core.services.question_set_provider import QuestionSetProvider, QuestionSource
from quizvault.core.services.quiz_store import QuizStore


def _ai_quiz(store: QuizStore, stored_questions: int = 0) -> Quiz:
    quiz = store.add_quiz(
        Quiz(
            id="quiz-ai",
            title="Generated quiz",
            owner_id=TEACHER.viewer_id,
            duration_minutes=10,
            assignment=Assignment(viewer_id=STUDENT.viewer_id),
            creation_mode=CreationMode.AI,
            ai_settings=AiSettings(topic="Volcanoes", question_count=4, difficulty="easy"),
        )
    )
    store.add_questions(
        [
            parse_question(mcq_payload(text=f"Stored question {i}?"), question_id=f"s{i}", quiz_id=quiz.id)
            for i in range(stored_questions)
        ]
    )
    return quiz


def _provider(store, generator, timeout=1.0):
    return QuestionSetProvider(store, generator=generator, timeout_seconds=timeout, rng=random.Random(5))


def test_unique_ai_quiz_generates_a_fresh_set_per_access():
    store = QuizStore()
    quiz = _ai_quiz(store)
    generator = FakeGenerator(marks=2)
    provider = _provider(store, generator)

    first = provider.resolve(quiz, STUDENT)
    second = provider.resolve(quiz, STUDENT)
    provider.shutdown()

    assert first.source is QuestionSource.GENERATED
    assert first.is_ephemeral
    assert [q.id for q in first.grading_key] == ["ai-0", "ai-1", "ai-2", "ai-3"]
    assert first.total_marks == 8
    assert first.grading_key[0].question_text != second.grading_key[0].question_text
    assert generator.calls == [("Volcanoes", 4, "easy"), ("Volcanoes", 4, "easy")]


def test_generator_failure_falls_back_to_stored_questions():
    store = QuizStore()
    quiz = _ai_quiz(store, stored_questions=3)
    provider = _provider(store, FakeGenerator(error=RuntimeError("model offline")))

    resolved = provider.resolve(quiz, STUDENT)
    provider.shutdown()

    assert resolved.source is QuestionSource.FALLBACK
    assert not resolved.is_ephemeral
    assert len(resolved.public_questions) == 3
    assert resolved.total_marks == 3


def test_generator_timeout_falls_back_to_stored_questions():
    store = QuizStore()
    quiz = _ai_quiz(store, stored_questions=3)
    provider = _provider(store, FakeGenerator(delay=0.5), timeout=0.05)

    resolved = provider.resolve(quiz, STUDENT)
    provider.shutdown()

    assert resolved.source is QuestionSource.FALLBACK
    assert sorted(q.id for q in resolved.public_questions) == ["s0", "s1", "s2"]


def test_failure_without_stored_questions_is_invalid_state():
    store = QuizStore()
    quiz = _ai_quiz(store)
    provider = _provider(store, None)

    with pytest.raises(InvalidStateError):
        provider.resolve(quiz, STUDENT)
    provider.shutdown()


def test_malformed_generated_items_count_as_upstream_failure():
    class BrokenGenerator:
        def generate(self, topic, count, difficulty):
            return [{"questionType": "mcq", "questionText": "Missing options?"}]

    store = QuizStore()
    provider = _provider(store, BrokenGenerator())

    with pytest.raises(UpstreamFailureError, match="malformed"):
        provider.generate_validated(AiSettings(topic="x", question_count=1))
    provider.shutdown()


def test_owner_always_sees_the_stored_set():
    store = QuizStore()
    quiz = _ai_quiz(store, stored_questions=2)
    generator = FakeGenerator()
    provider = _provider(store, generator)

    resolved = provider.resolve(quiz, TEACHER)
    provider.shutdown()

    assert resolved.source is QuestionSource.STORED
    assert generator.calls == []
