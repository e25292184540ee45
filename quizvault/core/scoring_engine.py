"""Grading of answer sheets against a grading key.

Everything here is a pure function of its arguments: the same answers and the
same key always produce the same result.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import math

from quizvault.core.answer_key_vault import reveal
from quizvault.core.models import (
    FillBlankQuestion,
    FreeTextQuestion,
    GradedAnswer,
    GradeResult,
    MatchingQuestion,
    Question,
    SingleChoiceQuestion,
    SubmittedAnswer,
    TrueFalseQuestion,
)


def grade(submitted_answers: Iterable[SubmittedAnswer], grading_key: Iterable[Question]) -> GradeResult:
    """Grade `submitted_answers` in submission order.

    Answers for question ids missing from the key are ignored, as are repeated
    answers for a question that was already graded.
    """
    key = list(grading_key)
    by_id = {question.id: question for question in key}
    graded: list[GradedAnswer] = []
    seen: set[str] = set()

    for answer in submitted_answers:
        question = by_id.get(answer.question_id)
        if question is None or answer.question_id in seen:
            continue
        seen.add(answer.question_id)
        graded.append(grade_answer(question, answer.selected_value))

    return GradeResult(
        answers=graded,
        total_score=sum(item.earned_marks for item in graded),
        total_marks=sum(question.marks for question in key),
    )


def grade_answer(question: Question, selected_value: object) -> GradedAnswer:
    pending_review = False
    if isinstance(question, (SingleChoiceQuestion, TrueFalseQuestion)):
        is_correct = _index_matches(selected_value, question.correct_option)
    elif isinstance(question, FillBlankQuestion):
        is_correct = _blanks_match(selected_value, question.blanks)
    elif isinstance(question, MatchingQuestion):
        is_correct = _pairs_match(selected_value, question)
    elif isinstance(question, FreeTextQuestion):
        # No automatic law for written answers; a reviewer assigns the marks.
        is_correct = False
        pending_review = True
    else:
        raise TypeError(f"Unsupported question model: {type(question).__name__}")

    return GradedAnswer(
        question_id=question.id,
        question_type=question.question_type,
        question_text=question.question_text,
        marks=question.marks,
        submitted_value=selected_value,
        earned_marks=question.marks if is_correct else 0,
        is_correct=is_correct,
        pending_review=pending_review,
        answer_key=reveal(question),
    )


def percentage(score: int, total_marks: int) -> int:
    """Whole-number percentage, half rounded up, 0 when there is nothing to score."""
    if total_marks <= 0:
        return 0
    value = math.floor(score / total_marks * 100 + 0.5)
    return max(0, min(100, value))


def _index_matches(selected: object, correct_option: int) -> bool:
    if isinstance(selected, bool) or not isinstance(selected, int):
        return False
    return selected == correct_option


def _normalize_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip().lower()


def _blanks_match(selected: object, blanks: list[str]) -> bool:
    """One entry per blank; missing or surplus entries make the answer wrong."""
    if isinstance(selected, str):
        selected = [selected]
    if not isinstance(selected, (list, tuple)) or len(selected) != len(blanks):
        return False
    return all(
        _normalize_text(given) == blank.strip().lower()
        for given, blank in zip(selected, blanks)
    )


def _pairs_match(selected: object, question: MatchingQuestion) -> bool:
    """Compare the right value chosen for each left item, by position or by key."""
    chosen: list[object]
    if isinstance(selected, (list, tuple)):
        chosen = list(selected)
    elif isinstance(selected, Mapping):
        chosen = [
            selected.get(index, selected.get(str(index), selected.get(pair.left)))
            for index, pair in enumerate(question.pairs)
        ]
    else:
        return False
    if len(chosen) < len(question.pairs):
        return False
    return all(
        isinstance(given, str) and given.strip() == pair.right
        for given, pair in zip(chosen, question.pairs)
    )
