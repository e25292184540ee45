"""Business logic shared by every entry point: quiz lifecycle, access, grading."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
import logging
import math

from quizvault.constants.quiz_constants import (
    AI_DIFFICULTIES,
    DIFFICULTY_NOMINAL_MARKS,
    GRADING_TOKEN_GRACE_SECONDS,
    MAX_AI_QUESTION_COUNT,
    MAX_DESCRIPTION_LENGTH,
    MAX_DURATION_MINUTES,
    MAX_TITLE_LENGTH,
    MIN_AI_QUESTION_COUNT,
    MIN_DURATION_MINUTES,
    MIN_TITLE_LENGTH,
)
from quizvault.core.answer_key_vault import GradingKeySealer
from quizvault.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    QuizValidationError,
    UpstreamFailureError,
)
from quizvault.core.models import (
    AiSettings,
    Assignment,
    AttemptPolicy,
    CreationMode,
    PublicQuestion,
    Question,
    Quiz,
    Submission,
    SubmittedAnswer,
    Viewer,
    utc_now,
)
from quizvault.core.question_parser import question_to_payload
from quizvault.core.scoring_engine import grade, percentage
from quizvault.core.services.aggregate_recalculator import AggregateRecalculator
from quizvault.core.services.ai_generator import QuestionGenerator
from quizvault.core.services.question_bank import MutationOutcome, QuestionBank
from quizvault.core.services.question_set_provider import QuestionSetProvider
from quizvault.core.services.quiz_store import QuizStore, new_id
from quizvault.core.services.submission_guard import SubmissionGuard
from quizvault.utils.settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuizListing:
    quiz: Quiz
    has_submitted: bool = False


@dataclass(slots=True)
class QuizView:
    """What a viewer receives when opening a quiz."""

    quiz: Quiz
    total_marks: int
    questions: list[PublicQuestion]
    grading_token: str | None = None
    # Only populated for the quiz owner.
    grading_key: list[Question] | None = None


@dataclass(slots=True)
class SubmissionReceipt:
    submission_id: str
    quiz_id: str
    score: int
    total_marks: int
    percentage: int
    attempt_number: int
    submitted_at: datetime


@dataclass(slots=True)
class ResultView:
    quiz: Quiz | None
    submission: Submission
    percentage: int


def default_attempt_policy(mode: CreationMode) -> AttemptPolicy:
    return AttemptPolicy.MULTIPLE if mode is CreationMode.AI else AttemptPolicy.SINGLE


def estimate_ai_total_marks(preview: list[Question], question_count: int, difficulty: str) -> int:
    """round(average marks x requested count), the estimate stored at creation time."""
    if preview:
        average = sum(q.marks for q in preview) / len(preview)
    else:
        average = DIFFICULTY_NOMINAL_MARKS.get(difficulty, 1)
    return math.floor(average * question_count + 0.5)


class QuizManager:
    """Facade over QuizStore, QuestionBank, SubmissionGuard and QuestionSetProvider."""

    def __init__(
        self,
        store: QuizStore | None = None,
        generator: QuestionGenerator | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._store = store or QuizStore()
        self._recalculator = AggregateRecalculator(self._store)
        self._bank = QuestionBank(self._store, self._recalculator)
        override = self._settings.attempt_policy_override
        self._guard = SubmissionGuard(self._store, AttemptPolicy(override) if override else None)
        self._provider = QuestionSetProvider(
            self._store,
            generator=generator,
            timeout_seconds=self._settings.ai_timeout_seconds,
        )
        self._sealer = GradingKeySealer(self._settings.grading_secret)

    @property
    def store(self) -> QuizStore:
        return self._store

    def shutdown(self) -> None:
        self._provider.shutdown()

    # --- Quiz lifecycle ---

    def create_quiz(
        self,
        owner: Viewer,
        *,
        title: str,
        duration_minutes: int,
        assigned_to: str | None = None,
        audience: Iterable[str] = (),
        description: str = "",
        creation_mode: CreationMode = CreationMode.MANUAL,
        unique_per_viewer: bool = True,
        ai_settings: AiSettings | None = None,
        attempt_policy: AttemptPolicy | None = None,
        is_active: bool = True,
    ) -> Quiz:
        if not owner.is_teacher:
            raise ForbiddenError("Only teachers can create quizzes.")
        assignment = _build_assignment(assigned_to, audience)
        quiz = Quiz(
            id=new_id(),
            title=_validate_title(title),
            owner_id=owner.viewer_id,
            duration_minutes=_validate_duration(duration_minutes),
            assignment=assignment,
            description=_validate_description(description),
            is_active=is_active,
            creation_mode=creation_mode,
            unique_per_viewer=unique_per_viewer,
            ai_settings=_validate_ai_settings(ai_settings) if creation_mode is CreationMode.AI else None,
            attempt_policy=attempt_policy or default_attempt_policy(creation_mode),
        )
        if creation_mode is CreationMode.AI and quiz.ai_settings is None:
            raise QuizValidationError("AI quizzes need topic, question count and difficulty.")

        preview: list[Question] = []
        if quiz.creation_mode is CreationMode.AI:
            preview = self._preview_ai_questions(quiz)
            if quiz.unique_per_viewer:
                quiz.total_marks = estimate_ai_total_marks(
                    preview, quiz.ai_settings.question_count, quiz.ai_settings.difficulty
                )

        stored = self._store.add_quiz(quiz)
        if quiz.creation_mode is CreationMode.AI and not quiz.unique_per_viewer:
            # One shared set: the preview becomes the quiz's stored questions.
            outcome = self._bank.bulk_create(stored.id, owner, [question_to_payload(q) for q in preview])
            stored.total_marks = outcome.total_marks
        logger.info("Quiz %s (%s) created by %s", stored.id, stored.creation_mode.value, owner.viewer_id)
        return stored

    def update_quiz(self, quiz_id: str, owner: Viewer, changes: Mapping[str, object]) -> Quiz:
        quiz = self._require_owned_quiz(quiz_id, owner)
        updates: dict[str, object] = {}
        if changes.get("title") is not None:
            updates["title"] = _validate_title(changes["title"])
        if changes.get("description") is not None:
            updates["description"] = _validate_description(changes["description"])
        if changes.get("duration_minutes") is not None:
            updates["duration_minutes"] = _validate_duration(changes["duration_minutes"])
        if changes.get("is_active") is not None:
            updates["is_active"] = bool(changes["is_active"])
        if changes.get("unique_per_viewer") is not None:
            updates["unique_per_viewer"] = bool(changes["unique_per_viewer"])
        if changes.get("attempt_policy") is not None:
            try:
                updates["attempt_policy"] = AttemptPolicy(changes["attempt_policy"])
            except ValueError as exc:
                raise QuizValidationError("Attempt policy must be 'single' or 'multiple'.") from exc
        # None leaves a field unchanged; an empty value clears it.
        assigned_to = changes.get("assigned_to")
        audience = changes.get("audience")
        if assigned_to is not None or audience is not None:
            updates["assignment"] = _build_assignment(
                quiz.assignment.viewer_id if assigned_to is None else assigned_to,
                quiz.assignment.audience if audience is None else audience,
            )
        saved = self._store.save_quiz(replace(quiz, **updates))
        logger.info("Quiz %s updated by %s: %s", quiz_id, owner.viewer_id, ", ".join(sorted(updates)) or "no changes")
        return saved

    def delete_quiz(self, quiz_id: str, owner: Viewer) -> None:
        self._require_owned_quiz(quiz_id, owner)
        self._store.delete_quiz(quiz_id)
        logger.info("Quiz %s deleted by %s with its questions and submissions", quiz_id, owner.viewer_id)

    def get_quiz(self, quiz_id: str, owner: Viewer) -> Quiz:
        return self._require_owned_quiz(quiz_id, owner)

    def list_quizzes(self, viewer: Viewer) -> list[QuizListing]:
        quizzes = self._store.list_quizzes()
        if viewer.is_teacher:
            return [QuizListing(quiz) for quiz in quizzes if quiz.owner_id == viewer.viewer_id]

        submitted = {s.quiz_id for s in self._store.list_submissions(submitter_id=viewer.viewer_id)}
        return [
            QuizListing(quiz, has_submitted=quiz.id in submitted)
            for quiz in quizzes
            if quiz.is_active and quiz.assignment.includes(viewer.viewer_id)
        ]

    # --- Taking a quiz ---

    def open_quiz(self, quiz_id: str, viewer: Viewer) -> QuizView:
        quiz, _attempt = self._guard.begin_attempt(quiz_id, viewer)
        resolved = self._provider.resolve(quiz, viewer)

        view = QuizView(quiz=quiz, total_marks=resolved.total_marks, questions=resolved.public_questions)
        if self._guard.is_owner(quiz, viewer):
            view.grading_key = resolved.grading_key
            view.total_marks = quiz.total_marks
        elif resolved.is_ephemeral:
            view.grading_token = self._sealer.seal(resolved.grading_key, quiz.id, viewer.viewer_id)
        return view

    def submit(
        self,
        quiz_id: str,
        viewer: Viewer,
        answers: Iterable[SubmittedAnswer],
        grading_token: str | None = None,
    ) -> SubmissionReceipt:
        quiz = self._guard.check_submission(quiz_id, viewer)
        grading_key = self._grading_key_for(quiz, viewer, grading_token)
        if not grading_key:
            raise InvalidStateError("This quiz has no questions to grade.")

        result = grade(answers, grading_key)
        submission = self._guard.record(
            quiz,
            Submission(
                id=new_id(),
                quiz_id=quiz.id,
                submitter_id=viewer.viewer_id,
                answers=result.answers,
                score=result.total_score,
                total_marks=result.total_marks,
                submitted_at=utc_now(),
            ),
        )
        logger.info(
            "Graded attempt %d of quiz %s by %s: %d/%d",
            submission.attempt_number,
            quiz.id,
            viewer.viewer_id,
            submission.score,
            submission.total_marks,
        )
        return SubmissionReceipt(
            submission_id=submission.id,
            quiz_id=quiz.id,
            score=submission.score,
            total_marks=submission.total_marks,
            percentage=percentage(submission.score, submission.total_marks),
            attempt_number=submission.attempt_number,
            submitted_at=submission.submitted_at,
        )

    # --- Results ---

    def get_result(self, quiz_id: str, viewer: Viewer, attempt_number: int | None = None) -> ResultView:
        submissions = self._store.list_submissions(quiz_id=quiz_id, submitter_id=viewer.viewer_id)
        if attempt_number is not None:
            submissions = [s for s in submissions if s.attempt_number == attempt_number]
        if not submissions:
            raise NotFoundError("No submission found for this quiz.")
        latest = max(submissions, key=lambda s: s.attempt_number)
        return self._result_view(latest)

    def get_submission(self, submission_id: str, viewer: Viewer) -> ResultView:
        submission = self._store.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("Submission not found.")
        if submission.submitter_id != viewer.viewer_id:
            quiz = self._store.get_quiz(submission.quiz_id)
            if quiz is None or not self._guard.is_owner(quiz, viewer):
                raise ForbiddenError("Not authorized to view this submission.")
        return self._result_view(submission)

    def list_my_submissions(self, viewer: Viewer) -> list[ResultView]:
        return [self._result_view(s) for s in self._store.list_submissions(submitter_id=viewer.viewer_id)]

    def list_quiz_submissions(self, quiz_id: str, owner: Viewer) -> list[ResultView]:
        quiz = self._require_owned_quiz(quiz_id, owner)
        return [
            ResultView(quiz=quiz, submission=s, percentage=percentage(s.score, s.total_marks))
            for s in self._store.list_submissions(quiz_id=quiz_id)
        ]

    # --- Question authoring, routed through the bank so totals stay in sync ---

    def list_questions(self, quiz_id: str, owner: Viewer) -> list[Question]:
        return self._bank.list_questions(quiz_id, owner)

    def add_questions(self, quiz_id: str, owner: Viewer, payloads: list[Mapping[str, object]]) -> MutationOutcome:
        return self._bank.bulk_create(quiz_id, owner, payloads)

    def update_question(self, question_id: str, owner: Viewer, payload: Mapping[str, object]) -> MutationOutcome:
        return self._bank.update(question_id, owner, payload)

    def delete_question(self, question_id: str, owner: Viewer) -> MutationOutcome:
        return self._bank.delete(question_id, owner)

    # --- Helpers ---

    def _grading_key_for(self, quiz: Quiz, viewer: Viewer, grading_token: str | None) -> list[Question]:
        if grading_token and quiz.regenerates_per_viewer:
            max_age = quiz.duration_minutes * 60 + GRADING_TOKEN_GRACE_SECONDS
            return self._sealer.unseal(grading_token, quiz.id, viewer.viewer_id, max_age_seconds=max_age)
        # Stored set; also what a viewer of an AI quiz saw when generation fell back.
        return self._store.list_questions(quiz.id)

    def _preview_ai_questions(self, quiz: Quiz) -> list[Question]:
        if quiz.unique_per_viewer:
            try:
                return self._provider.generate_validated(quiz.ai_settings)
            except UpstreamFailureError as exc:
                logger.warning("AI preview for new quiz failed, estimating total from difficulty: %s", exc)
                return []
        # A shared AI set must exist before the quiz does.
        return self._provider.generate_validated(quiz.ai_settings)

    def _result_view(self, submission: Submission) -> ResultView:
        return ResultView(
            quiz=self._store.get_quiz(submission.quiz_id),
            submission=submission,
            percentage=percentage(submission.score, submission.total_marks),
        )

    def _require_owned_quiz(self, quiz_id: str, owner: Viewer) -> Quiz:
        quiz = self._guard.load_quiz(quiz_id)
        if not self._guard.is_owner(quiz, owner):
            raise ForbiddenError("Not authorized to manage this quiz.")
        return quiz


def _validate_title(title: object) -> str:
    cleaned = str(title or "").strip()
    if not MIN_TITLE_LENGTH <= len(cleaned) <= MAX_TITLE_LENGTH:
        raise QuizValidationError(f"Title must be {MIN_TITLE_LENGTH}-{MAX_TITLE_LENGTH} characters.")
    return cleaned


def _validate_description(description: object) -> str:
    cleaned = str(description or "").strip()
    if len(cleaned) > MAX_DESCRIPTION_LENGTH:
        raise QuizValidationError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters.")
    return cleaned


def _validate_duration(duration: object) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise QuizValidationError("Duration must be a whole number of minutes.")
    if not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
        raise QuizValidationError(
            f"Duration must be {MIN_DURATION_MINUTES}-{MAX_DURATION_MINUTES} minutes."
        )
    return duration


def _validate_ai_settings(settings: AiSettings | None) -> AiSettings | None:
    if settings is None:
        return None
    topic = settings.topic.strip()
    if not topic:
        raise QuizValidationError("AI topic is required.")
    if not MIN_AI_QUESTION_COUNT <= settings.question_count <= MAX_AI_QUESTION_COUNT:
        raise QuizValidationError(
            f"Number of questions must be {MIN_AI_QUESTION_COUNT}-{MAX_AI_QUESTION_COUNT}."
        )
    if settings.difficulty not in AI_DIFFICULTIES:
        raise QuizValidationError(f"Difficulty must be one of {', '.join(AI_DIFFICULTIES)}.")
    return AiSettings(topic=topic, question_count=settings.question_count, difficulty=settings.difficulty)


def _build_assignment(assigned_to: object, audience: Iterable[str]) -> Assignment:
    members = frozenset(str(member).strip() for member in audience if str(member).strip())
    target = str(assigned_to).strip() if assigned_to else None
    if not target and not members:
        raise QuizValidationError("A quiz must be assigned to a student or an audience.")
    return Assignment(viewer_id=target or None, audience=members)
