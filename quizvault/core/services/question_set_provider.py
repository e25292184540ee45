"""Decides which question set a viewer gets for a quiz."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
import logging
import random

from quizvault.constants.network_constants import AI_GENERATION_TIMEOUT_SECONDS
from quizvault.constants.quiz_constants import EPHEMERAL_ID_PREFIX
from quizvault.core.answer_key_vault import strip_all
from quizvault.core.errors import InvalidStateError, QuestionValidationError, UpstreamFailureError
from quizvault.core.models import AiSettings, PublicQuestion, Question, Quiz, Viewer
from quizvault.core.question_parser import parse_question
from quizvault.core.services.ai_generator import QuestionGenerator
from quizvault.core.services.quiz_store import QuizStore

logger = logging.getLogger(__name__)


class QuestionSource(str, Enum):
    STORED = "stored"
    GENERATED = "generated"
    FALLBACK = "fallback"


@dataclass(slots=True)
class ResolvedQuestionSet:
    public_questions: list[PublicQuestion]
    grading_key: list[Question]
    total_marks: int
    source: QuestionSource

    @property
    def is_ephemeral(self) -> bool:
        return self.source is QuestionSource.GENERATED


class QuestionSetProvider:
    """Resolves stored or freshly generated question sets.

    Generation runs on a small worker pool so the wait can be bounded even
    when the generator itself ignores timeouts.
    """

    def __init__(
        self,
        store: QuizStore,
        generator: QuestionGenerator | None = None,
        timeout_seconds: float = AI_GENERATION_TIMEOUT_SECONDS,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._generator = generator
        self._timeout = timeout_seconds
        self._rng = rng or random.Random()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="QuizAiGenerator")

    def resolve(self, quiz: Quiz, viewer: Viewer) -> ResolvedQuestionSet:
        if viewer.is_teacher or not quiz.regenerates_per_viewer:
            stored = self._store.list_questions(quiz.id)
            if not stored and not viewer.is_teacher:
                raise InvalidStateError("This quiz has no questions.")
            return self._build(stored, QuestionSource.STORED)

        try:
            generated = self.generate_validated(quiz.ai_settings)
        except UpstreamFailureError as exc:
            return self._fallback(quiz, exc)
        return self._build(generated, QuestionSource.GENERATED)

    def generate_validated(self, settings: AiSettings | None) -> list[Question]:
        """Call the generator with a bounded wait and validate every item it returns."""
        if settings is None:
            raise UpstreamFailureError("Quiz has no AI settings.")
        if self._generator is None:
            raise UpstreamFailureError("No AI question generator is configured.")

        future = self._executor.submit(
            self._generator.generate,
            settings.topic,
            settings.question_count,
            settings.difficulty,
        )
        try:
            raw_items = future.result(timeout=self._timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise UpstreamFailureError(f"AI generation timed out after {self._timeout:g}s.") from exc
        except UpstreamFailureError:
            raise
        except Exception as exc:
            raise UpstreamFailureError(f"AI generation failed: {exc}") from exc

        if not isinstance(raw_items, list) or not raw_items:
            raise UpstreamFailureError("AI generator returned no questions.")
        try:
            return [
                parse_question(item, question_id=f"{EPHEMERAL_ID_PREFIX}{index}", quiz_id=None)
                for index, item in enumerate(raw_items)
            ]
        except QuestionValidationError as exc:
            raise UpstreamFailureError(f"AI generator returned a malformed question: {exc}") from exc

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _fallback(self, quiz: Quiz, error: UpstreamFailureError) -> ResolvedQuestionSet:
        stored = self._store.list_questions(quiz.id)
        if not stored:
            logger.warning("AI generation failed for quiz %s and no stored questions exist: %s", quiz.id, error)
            raise InvalidStateError("No questions are available for this quiz right now.") from error
        logger.warning(
            "AI generation failed for quiz %s, serving %d stored questions instead: %s",
            quiz.id,
            len(stored),
            error,
        )
        return self._build(stored, QuestionSource.FALLBACK)

    def _build(self, questions: list[Question], source: QuestionSource) -> ResolvedQuestionSet:
        return ResolvedQuestionSet(
            public_questions=strip_all(questions, self._rng),
            grading_key=questions,
            total_marks=sum(q.marks for q in questions),
            source=source,
        )
