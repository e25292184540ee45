"""Attempt eligibility for each (quiz, submitter) pair.

Lifecycle: NotStarted -> Active (viewer opened the quiz) -> Graded (a
submission was stored). Only an Active attempt can be submitted. Graded is
terminal for single-attempt quizzes; under the multiple-attempt policy opening
the quiz again starts the next attempt.
"""

from __future__ import annotations

import logging

from quizvault.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from quizvault.core.models import (
    AttemptPolicy,
    AttemptRecord,
    AttemptState,
    Quiz,
    Submission,
    Viewer,
)
from quizvault.core.services.quiz_store import QuizStore

logger = logging.getLogger(__name__)


class SubmissionGuard:
    def __init__(self, store: QuizStore, policy_override: AttemptPolicy | None = None) -> None:
        self._store = store
        self._policy_override = policy_override

    def effective_policy(self, quiz: Quiz) -> AttemptPolicy:
        return self._policy_override or quiz.attempt_policy

    def load_quiz(self, quiz_id: str) -> Quiz:
        quiz = self._store.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found.")
        return quiz

    def is_owner(self, quiz: Quiz, viewer: Viewer) -> bool:
        return viewer.is_teacher and quiz.owner_id == viewer.viewer_id

    def check_access(self, quiz: Quiz, viewer: Viewer) -> None:
        """Raise unless `viewer` may see the content of `quiz` right now."""
        if self.is_owner(quiz, viewer):
            return
        if viewer.is_teacher:
            raise ForbiddenError("Only the quiz owner can view this quiz.")
        if not quiz.is_active:
            raise UnavailableError("This quiz is no longer active.")
        if not quiz.assignment.includes(viewer.viewer_id):
            raise ForbiddenError("This quiz is not assigned to you.")

    def attempt_state(self, quiz_id: str, submitter_id: str) -> AttemptState:
        record = self._store.get_attempt(quiz_id, submitter_id)
        return record.state if record is not None else AttemptState.NOT_STARTED

    def begin_attempt(self, quiz_id: str, viewer: Viewer) -> tuple[Quiz, AttemptRecord | None]:
        """NotStarted/Graded -> Active. Owners pass through without an attempt record."""
        quiz = self.load_quiz(quiz_id)
        self.check_access(quiz, viewer)
        if self.is_owner(quiz, viewer):
            return quiz, None
        self._reject_if_already_graded(quiz, viewer)
        return quiz, self._store.mark_attempt_active(quiz.id, viewer.viewer_id)

    def check_submission(self, quiz_id: str, viewer: Viewer) -> Quiz:
        """Eligibility check before grading; the atomic insert in `record` is final."""
        quiz = self.load_quiz(quiz_id)
        if viewer.is_teacher:
            raise ForbiddenError("Only students can submit quizzes.")
        self.check_access(quiz, viewer)
        self._reject_if_already_graded(quiz, viewer)
        if self.attempt_state(quiz.id, viewer.viewer_id) is not AttemptState.ACTIVE:
            raise InvalidStateError("Open the quiz before submitting.")
        return quiz

    def record(self, quiz: Quiz, submission: Submission) -> Submission:
        """Active -> Graded. Exactly one concurrent submission wins under single policy."""
        policy = self.effective_policy(quiz)
        try:
            return self._store.insert_submission(submission, policy)
        except ConflictError:
            logger.info(
                "Rejected duplicate submission for quiz %s by %s",
                quiz.id,
                submission.submitter_id,
            )
            raise

    def _reject_if_already_graded(self, quiz: Quiz, viewer: Viewer) -> None:
        if self.effective_policy(quiz) is not AttemptPolicy.SINGLE:
            return
        if self.attempt_state(quiz.id, viewer.viewer_id) is AttemptState.GRADED:
            raise ConflictError("You have already submitted this quiz.")
