"""Separation of public (answer-free) and private (grading) question views.

`strip` is the only way a question reaches a student. Ephemeral grading keys
produced for AI quizzes leave the server only inside a sealed token: Fernet
encrypts and authenticates the key, and the token is bound to the quiz and
the viewer it was issued for.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable
import hashlib
import json
import logging
import random

from cryptography.fernet import Fernet, InvalidToken

from quizvault.core.errors import InvalidStateError, QuestionValidationError
from quizvault.core.models import (
    FillBlankQuestion,
    FreeTextQuestion,
    MatchingQuestion,
    PublicQuestion,
    Question,
    SingleChoiceQuestion,
    TrueFalseQuestion,
)
from quizvault.core.question_parser import parse_question, question_to_payload

logger = logging.getLogger(__name__)

_shuffle_rng = random.Random()


def strip(question: Question, rng: random.Random | None = None) -> PublicQuestion:
    """Return the public view of `question` with every answer field removed."""
    rng = rng or _shuffle_rng
    public = PublicQuestion(
        id=question.id,
        question_type=question.question_type,
        question_text=question.question_text,
        marks=question.marks,
    )
    if isinstance(question, (SingleChoiceQuestion, TrueFalseQuestion)):
        public.options = list(question.options)
    elif isinstance(question, FreeTextQuestion):
        pass
    elif isinstance(question, FillBlankQuestion):
        public.blank_count = len(question.blanks)
    elif isinstance(question, MatchingQuestion):
        public.left_items = [pair.left for pair in question.pairs]
        rights = [pair.right for pair in question.pairs]
        public.right_items = rng.sample(rights, k=len(rights))
    else:
        raise TypeError(f"Unsupported question model: {type(question).__name__}")
    return public


def strip_all(questions: Iterable[Question], rng: random.Random | None = None) -> list[PublicQuestion]:
    return [strip(question, rng) for question in questions]


def reveal(question: Question) -> dict[str, object]:
    """Answer-bearing fields of `question`, as echoed into graded answers."""
    payload = question_to_payload(question)
    for key in ("id", "questionType", "questionText", "marks"):
        payload.pop(key, None)
    return payload


def _derive_fernet_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class GradingKeySealer:
    """Seals ephemeral grading keys into opaque tokens and opens them again."""

    def __init__(self, secret: str | None = None) -> None:
        if secret:
            key = _derive_fernet_key(secret)
        else:
            logger.warning(
                "No grading secret configured; generated a process-local key. "
                "Sealed grading tokens will not survive a restart."
            )
            key = Fernet.generate_key()
        self._fernet = Fernet(key)

    def seal(self, grading_key: list[Question], quiz_id: str, viewer_id: str) -> str:
        document = {
            "quizId": quiz_id,
            "viewerId": viewer_id,
            "questions": [question_to_payload(q) for q in grading_key],
        }
        raw = json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return self._fernet.encrypt(raw).decode("ascii")

    def unseal(
        self,
        token: str,
        quiz_id: str,
        viewer_id: str,
        max_age_seconds: int | None = None,
    ) -> list[Question]:
        try:
            raw = self._fernet.decrypt(token.encode("ascii"), ttl=max_age_seconds)
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise InvalidStateError("Grading token is invalid or has expired.") from exc

        document = json.loads(raw.decode("utf-8"))
        if document.get("quizId") != quiz_id or document.get("viewerId") != viewer_id:
            raise InvalidStateError("Grading token was issued for a different quiz or viewer.")

        try:
            return [
                parse_question(item, question_id=str(item.get("id")), quiz_id=None)
                for item in document.get("questions", [])
            ]
        except QuestionValidationError as exc:
            raise InvalidStateError(f"Grading token holds a malformed question: {exc}") from exc
