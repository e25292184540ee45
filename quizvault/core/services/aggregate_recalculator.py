"""Keeps each quiz's total marks equal to the sum of its stored question marks."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Union

from quizvault.core.services.quiz_store import QuizStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuestionsCreated:
    quiz_id: str
    question_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class QuestionUpdated:
    quiz_id: str
    question_id: str


@dataclass(frozen=True, slots=True)
class QuestionDeleted:
    quiz_id: str
    question_id: str


QuestionMutation = Union[QuestionsCreated, QuestionUpdated, QuestionDeleted]


class AggregateRecalculator:
    """Recomputes totals from the full current question set on every call."""

    def __init__(self, store: QuizStore) -> None:
        self._store = store

    def recompute(self, quiz_id: str) -> int:
        total = self._store.recompute_total_marks(quiz_id)
        logger.debug("Quiz %s total marks recomputed to %d", quiz_id, total)
        return total

    def apply(self, mutation: QuestionMutation) -> int:
        return self.recompute(mutation.quiz_id)
