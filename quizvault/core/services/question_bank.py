"""Single routing layer for every mutation of stored questions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging

from quizvault.core.errors import ForbiddenError, NotFoundError, QuestionValidationError
from quizvault.core.models import Question, Quiz, Viewer
from quizvault.core.question_parser import parse_question
from quizvault.core.services.aggregate_recalculator import (
    AggregateRecalculator,
    QuestionDeleted,
    QuestionMutation,
    QuestionsCreated,
    QuestionUpdated,
)
from quizvault.core.services.quiz_store import QuizStore, new_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MutationOutcome:
    """Questions touched by a mutation, the command it emitted, and the new total."""

    questions: list[Question]
    mutation: QuestionMutation
    total_marks: int


class QuestionBank:
    """Validates, persists and hands each mutation command to the recalculator."""

    def __init__(self, store: QuizStore, recalculator: AggregateRecalculator) -> None:
        self._store = store
        self._recalculator = recalculator

    def list_questions(self, quiz_id: str, owner: Viewer) -> list[Question]:
        self._require_owned_quiz(quiz_id, owner)
        return self._store.list_questions(quiz_id)

    def create(self, quiz_id: str, owner: Viewer, payload: Mapping[str, object]) -> MutationOutcome:
        return self.bulk_create(quiz_id, owner, [payload])

    def bulk_create(
        self,
        quiz_id: str,
        owner: Viewer,
        payloads: list[Mapping[str, object]],
    ) -> MutationOutcome:
        self._require_owned_quiz(quiz_id, owner)
        if not payloads:
            raise QuestionValidationError("At least one question is required.")

        questions: list[Question] = []
        for index, payload in enumerate(payloads):
            try:
                questions.append(parse_question(payload, question_id=new_id(), quiz_id=quiz_id))
            except QuestionValidationError as exc:
                if len(payloads) == 1:
                    raise
                raise QuestionValidationError(f"Question {index + 1}: {exc}") from exc

        stored = self._store.add_questions(questions)
        mutation = QuestionsCreated(quiz_id=quiz_id, question_ids=tuple(q.id for q in stored))
        return self._commit(stored, mutation)

    def update(self, question_id: str, owner: Viewer, payload: Mapping[str, object]) -> MutationOutcome:
        current = self._require_question(question_id)
        self._require_owned_quiz(current.quiz_id, owner)
        updated = parse_question(payload, question_id=current.id, quiz_id=current.quiz_id)
        stored = self._store.replace_question(updated)
        return self._commit([stored], QuestionUpdated(quiz_id=current.quiz_id, question_id=current.id))

    def delete(self, question_id: str, owner: Viewer) -> MutationOutcome:
        current = self._require_question(question_id)
        self._require_owned_quiz(current.quiz_id, owner)
        removed = self._store.delete_question(question_id)
        if removed is None:
            raise NotFoundError("Question not found.")
        return self._commit([removed], QuestionDeleted(quiz_id=current.quiz_id, question_id=current.id))

    def _commit(self, questions: list[Question], mutation: QuestionMutation) -> MutationOutcome:
        total = self._recalculator.apply(mutation)
        logger.info("%s applied to quiz %s; total marks now %d", type(mutation).__name__, mutation.quiz_id, total)
        return MutationOutcome(questions=questions, mutation=mutation, total_marks=total)

    def _require_quiz(self, quiz_id: str) -> Quiz:
        quiz = self._store.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found.")
        return quiz

    def _require_owned_quiz(self, quiz_id: str, owner: Viewer) -> Quiz:
        quiz = self._require_quiz(quiz_id)
        if not owner.is_teacher or quiz.owner_id != owner.viewer_id:
            raise ForbiddenError("Not authorized to change questions of this quiz.")
        return quiz

    def _require_question(self, question_id: str) -> Question:
        question = self._store.get_question(question_id)
        if question is None:
            raise NotFoundError("Question not found.")
        return question
