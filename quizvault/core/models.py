"""Domain models for the quiz engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Union

from quizvault.constants.quiz_constants import DEFAULT_AI_DIFFICULTY, TRUE_FALSE_OPTIONS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuestionType(str, Enum):
    MCQ = "mcq"
    WRITTEN = "written"
    FILL_BLANK = "fillblank"
    MATCHING = "matching"
    TRUE_FALSE = "truefalse"


class CreationMode(str, Enum):
    MANUAL = "manual"
    AI = "ai"


class ViewerRole(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class AttemptPolicy(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    GRADED = "graded"


@dataclass(frozen=True, slots=True)
class Viewer:
    """Authenticated principal as handed over by the auth layer."""

    viewer_id: str
    role: ViewerRole

    @property
    def is_teacher(self) -> bool:
        return self.role is ViewerRole.TEACHER


# --- Questions ---------------------------------------------------------------


@dataclass(slots=True)
class SingleChoiceQuestion:
    """Multiple-choice question with exactly four options."""

    question_type: ClassVar[QuestionType] = QuestionType.MCQ

    id: str
    quiz_id: str | None
    question_text: str
    marks: int
    options: list[str]
    correct_option: int


@dataclass(slots=True)
class TrueFalseQuestion:
    """Statement judged true (index 0) or false (index 1)."""

    question_type: ClassVar[QuestionType] = QuestionType.TRUE_FALSE

    id: str
    quiz_id: str | None
    question_text: str
    marks: int
    correct_option: int

    @property
    def options(self) -> list[str]:
        return list(TRUE_FALSE_OPTIONS)


@dataclass(slots=True)
class FreeTextQuestion:
    """Written answer compared against an expected answer by a reviewer."""

    question_type: ClassVar[QuestionType] = QuestionType.WRITTEN

    id: str
    quiz_id: str | None
    question_text: str
    marks: int
    expected_answer: str


@dataclass(slots=True)
class FillBlankQuestion:
    """Question text with one `_____` per entry in `blanks`."""

    question_type: ClassVar[QuestionType] = QuestionType.FILL_BLANK

    id: str
    quiz_id: str | None
    question_text: str
    marks: int
    blanks: list[str]


@dataclass(frozen=True, slots=True)
class MatchPair:
    left: str
    right: str


@dataclass(slots=True)
class MatchingQuestion:
    """Left items matched to right items; `pairs` holds the correct pairing."""

    question_type: ClassVar[QuestionType] = QuestionType.MATCHING

    id: str
    quiz_id: str | None
    question_text: str
    marks: int
    pairs: list[MatchPair]


Question = Union[
    SingleChoiceQuestion,
    TrueFalseQuestion,
    FreeTextQuestion,
    FillBlankQuestion,
    MatchingQuestion,
]


@dataclass(slots=True)
class PublicQuestion:
    """Answer-free view of a question, safe to send to a student."""

    id: str
    question_type: QuestionType
    question_text: str
    marks: int
    options: list[str] | None = None
    blank_count: int | None = None
    left_items: list[str] | None = None
    right_items: list[str] | None = None


# --- Quizzes -----------------------------------------------------------------


@dataclass(slots=True)
class AiSettings:
    topic: str
    question_count: int
    difficulty: str = DEFAULT_AI_DIFFICULTY


@dataclass(slots=True)
class Assignment:
    """Single assigned viewer, or an audience of viewer ids."""

    viewer_id: str | None = None
    audience: frozenset[str] = frozenset()

    def includes(self, viewer_id: str) -> bool:
        if self.viewer_id is not None and viewer_id == self.viewer_id:
            return True
        return viewer_id in self.audience


@dataclass(slots=True)
class Quiz:
    id: str
    title: str
    owner_id: str
    duration_minutes: int
    assignment: Assignment
    description: str = ""
    total_marks: int = 0
    is_active: bool = True
    creation_mode: CreationMode = CreationMode.MANUAL
    unique_per_viewer: bool = True
    ai_settings: AiSettings | None = None
    attempt_policy: AttemptPolicy = AttemptPolicy.SINGLE
    created_at: datetime = field(default_factory=utc_now)

    @property
    def regenerates_per_viewer(self) -> bool:
        return (
            self.creation_mode is CreationMode.AI
            and self.unique_per_viewer
            and self.ai_settings is not None
        )


# --- Submissions -------------------------------------------------------------


@dataclass(slots=True)
class SubmittedAnswer:
    """One entry of a student's answer sheet."""

    question_id: str
    selected_value: object = None


@dataclass(slots=True)
class GradedAnswer:
    """Outcome of grading one answer, with the key echoed for later review."""

    question_id: str
    question_type: QuestionType
    question_text: str
    marks: int
    submitted_value: object
    earned_marks: int
    is_correct: bool
    pending_review: bool = False
    answer_key: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class GradeResult:
    answers: list[GradedAnswer]
    total_score: int
    total_marks: int


@dataclass(slots=True)
class Submission:
    id: str
    quiz_id: str
    submitter_id: str
    answers: list[GradedAnswer]
    score: int
    total_marks: int
    attempt_number: int = 1
    submitted_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class AttemptRecord:
    """Where a (quiz, submitter) pair sits in the attempt lifecycle."""

    quiz_id: str
    submitter_id: str
    state: AttemptState
    attempt_number: int
    updated_at: datetime = field(default_factory=utc_now)
