"""Parse and validate question payloads into typed question models.

Payloads use the camelCase wire shape shared by authors and the AI generator:

    {"questionType": "mcq", "questionText": "...", "marks": 1,
     "options": [...4 items], "correctOption": 0}
    {"questionType": "truefalse", ..., "correctOption": 0 | 1}
    {"questionType": "written", ..., "correctAnswer": "..."}
    {"questionType": "fillblank", ..., "blanks": ["...", ...]}
    {"questionType": "matching", ..., "matchPairs": [{"left": "...", "right": "..."}, ...]}

`question_to_payload` produces the same shape back, answers included, so a
parsed question survives a payload round trip unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping

from quizvault.constants.quiz_constants import (
    DEFAULT_QUESTION_MARKS,
    MAX_QUESTION_MARKS,
    MAX_QUESTION_TEXT_LENGTH,
    MCQ_OPTION_COUNT,
    MIN_MATCHING_PAIRS,
    MIN_QUESTION_MARKS,
    MIN_QUESTION_TEXT_LENGTH,
    TRUE_FALSE_OPTIONS,
)
from quizvault.core.errors import QuestionValidationError
from quizvault.core.models import (
    FillBlankQuestion,
    FreeTextQuestion,
    MatchingQuestion,
    MatchPair,
    Question,
    QuestionType,
    SingleChoiceQuestion,
    TrueFalseQuestion,
)


def parse_question(
    payload: Mapping[str, object],
    *,
    question_id: str,
    quiz_id: str | None,
) -> Question:
    """Validate `payload` and build the matching question variant."""
    if not isinstance(payload, Mapping):
        raise QuestionValidationError("Question payload must be an object.")

    question_type = _parse_type(payload.get("questionType"))
    text = _parse_text(payload.get("questionText"))
    marks = _parse_marks(payload.get("marks"))

    if question_type is QuestionType.MCQ:
        return SingleChoiceQuestion(
            id=question_id,
            quiz_id=quiz_id,
            question_text=text,
            marks=marks,
            options=_parse_options(payload.get("options")),
            correct_option=_parse_index(payload.get("correctOption"), MCQ_OPTION_COUNT),
        )
    if question_type is QuestionType.TRUE_FALSE:
        return TrueFalseQuestion(
            id=question_id,
            quiz_id=quiz_id,
            question_text=text,
            marks=marks,
            correct_option=_parse_index(payload.get("correctOption"), len(TRUE_FALSE_OPTIONS)),
        )
    if question_type is QuestionType.WRITTEN:
        expected = payload.get("correctAnswer")
        if not isinstance(expected, str) or not expected.strip():
            raise QuestionValidationError("Written questions need a non-empty correctAnswer.")
        return FreeTextQuestion(
            id=question_id,
            quiz_id=quiz_id,
            question_text=text,
            marks=marks,
            expected_answer=expected.strip(),
        )
    if question_type is QuestionType.FILL_BLANK:
        return FillBlankQuestion(
            id=question_id,
            quiz_id=quiz_id,
            question_text=text,
            marks=marks,
            blanks=_parse_blanks(payload.get("blanks")),
        )
    if question_type is QuestionType.MATCHING:
        return MatchingQuestion(
            id=question_id,
            quiz_id=quiz_id,
            question_text=text,
            marks=marks,
            pairs=_parse_pairs(payload.get("matchPairs")),
        )
    raise QuestionValidationError(f"Unsupported question type: {question_type!r}")


def question_to_payload(question: Question) -> dict[str, object]:
    """Serialize a question to the wire shape, answer fields included."""
    payload: dict[str, object] = {
        "id": question.id,
        "questionType": question.question_type.value,
        "questionText": question.question_text,
        "marks": question.marks,
    }
    if isinstance(question, (SingleChoiceQuestion, TrueFalseQuestion)):
        payload["options"] = list(question.options)
        payload["correctOption"] = question.correct_option
    elif isinstance(question, FreeTextQuestion):
        payload["correctAnswer"] = question.expected_answer
    elif isinstance(question, FillBlankQuestion):
        payload["blanks"] = list(question.blanks)
    elif isinstance(question, MatchingQuestion):
        payload["matchPairs"] = [{"left": p.left, "right": p.right} for p in question.pairs]
    else:
        raise TypeError(f"Unsupported question model: {type(question).__name__}")
    return payload


def _parse_type(raw: object) -> QuestionType:
    if raw is None or raw == "":
        raise QuestionValidationError("questionType is required.")
    try:
        return QuestionType(str(raw).strip().lower())
    except ValueError as exc:
        raise QuestionValidationError(f"Unknown questionType {raw!r}.") from exc


def _parse_text(raw: object) -> str:
    if not isinstance(raw, str):
        raise QuestionValidationError("questionText must be a string.")
    cleaned = raw.strip()
    if not MIN_QUESTION_TEXT_LENGTH <= len(cleaned) <= MAX_QUESTION_TEXT_LENGTH:
        raise QuestionValidationError(
            f"questionText must be {MIN_QUESTION_TEXT_LENGTH}-{MAX_QUESTION_TEXT_LENGTH} characters."
        )
    return cleaned


def _parse_marks(raw: object) -> int:
    if raw is None:
        return DEFAULT_QUESTION_MARKS
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise QuestionValidationError("marks must be an integer.")
    if not MIN_QUESTION_MARKS <= raw <= MAX_QUESTION_MARKS:
        raise QuestionValidationError(
            f"marks must be between {MIN_QUESTION_MARKS} and {MAX_QUESTION_MARKS}."
        )
    return raw


def _parse_index(raw: object, option_count: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise QuestionValidationError("correctOption must be an integer.")
    if not 0 <= raw < option_count:
        raise QuestionValidationError(
            f"correctOption must be between 0 and {option_count - 1}."
        )
    return raw


def _parse_options(raw: object) -> list[str]:
    if not isinstance(raw, list) or len(raw) != MCQ_OPTION_COUNT:
        raise QuestionValidationError(f"MCQ must have exactly {MCQ_OPTION_COUNT} options.")
    cleaned = [option.strip() if isinstance(option, str) else "" for option in raw]
    if any(not option for option in cleaned):
        raise QuestionValidationError("Option text cannot be empty.")
    return cleaned


def _parse_blanks(raw: object) -> list[str]:
    if not isinstance(raw, list) or not raw:
        raise QuestionValidationError("Fill-in-the-blank questions need at least one blank.")
    cleaned = [blank.strip() if isinstance(blank, str) else "" for blank in raw]
    if any(not blank for blank in cleaned):
        raise QuestionValidationError("Blank answers cannot be empty.")
    return cleaned


def _parse_pairs(raw: object) -> list[MatchPair]:
    if not isinstance(raw, list) or len(raw) < MIN_MATCHING_PAIRS:
        raise QuestionValidationError(
            f"Matching questions need at least {MIN_MATCHING_PAIRS} pairs."
        )
    pairs: list[MatchPair] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise QuestionValidationError("Each match pair must be an object with left and right.")
        left = item.get("left")
        right = item.get("right")
        if not isinstance(left, str) or not left.strip() or not isinstance(right, str) or not right.strip():
            raise QuestionValidationError("Match pairs need non-empty left and right values.")
        pairs.append(MatchPair(left=left.strip(), right=right.strip()))
    return pairs
