"""In-memory authoritative store for quizzes, questions, submissions and attempts."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import replace
from threading import Lock
from uuid import uuid4

from quizvault.core.errors import ConflictError, InvalidStateError
from quizvault.core.models import (
    AttemptPolicy,
    AttemptRecord,
    AttemptState,
    Question,
    Quiz,
    Submission,
    utc_now,
)


def new_id() -> str:
    return uuid4().hex


class QuizStore:
    """Stores every record behind one lock; reads hand out copies.

    `insert_submission` is the store-level uniqueness constraint on
    (quiz id, submitter id) for single-attempt quizzes.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._quizzes: dict[str, Quiz] = {}
        self._questions: dict[str, Question] = {}
        self._submissions: dict[str, Submission] = {}
        self._attempts: dict[tuple[str, str], AttemptRecord] = {}

    # --- Quizzes ---

    def add_quiz(self, quiz: Quiz) -> Quiz:
        with self._lock:
            if quiz.id in self._quizzes:
                raise ValueError(f"Quiz {quiz.id} already exists.")
            self._quizzes[quiz.id] = deepcopy(quiz)
            return deepcopy(quiz)

    def get_quiz(self, quiz_id: str) -> Quiz | None:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            return deepcopy(quiz) if quiz is not None else None

    def list_quizzes(self) -> list[Quiz]:
        with self._lock:
            quizzes = sorted(self._quizzes.values(), key=lambda q: q.created_at, reverse=True)
            return deepcopy(quizzes)

    def save_quiz(self, quiz: Quiz) -> Quiz:
        """Overwrite a quiz's fields, keeping the stored total marks."""
        with self._lock:
            current = self._quizzes.get(quiz.id)
            if current is None:
                raise KeyError(quiz.id)
            stored = replace(deepcopy(quiz), total_marks=current.total_marks)
            self._quizzes[quiz.id] = stored
            return deepcopy(stored)

    def recompute_total_marks(self, quiz_id: str) -> int:
        """Sum stored question marks and write the total back in one step."""
        with self._lock:
            total = sum(q.marks for q in self._questions.values() if q.quiz_id == quiz_id)
            quiz = self._quizzes.get(quiz_id)
            if quiz is not None:
                quiz.total_marks = total
            return total

    def delete_quiz(self, quiz_id: str) -> bool:
        """Delete a quiz together with its questions, submissions and attempts."""
        with self._lock:
            if self._quizzes.pop(quiz_id, None) is None:
                return False
            self._questions = {k: q for k, q in self._questions.items() if q.quiz_id != quiz_id}
            self._submissions = {k: s for k, s in self._submissions.items() if s.quiz_id != quiz_id}
            self._attempts = {k: a for k, a in self._attempts.items() if k[0] != quiz_id}
            return True

    # --- Questions ---

    def add_questions(self, questions: list[Question]) -> list[Question]:
        with self._lock:
            for question in questions:
                if question.quiz_id not in self._quizzes:
                    raise KeyError(question.quiz_id)
            for question in questions:
                self._questions[question.id] = deepcopy(question)
            return deepcopy(questions)

    def get_question(self, question_id: str) -> Question | None:
        with self._lock:
            question = self._questions.get(question_id)
            return deepcopy(question) if question is not None else None

    def list_questions(self, quiz_id: str) -> list[Question]:
        with self._lock:
            return deepcopy([q for q in self._questions.values() if q.quiz_id == quiz_id])

    def replace_question(self, question: Question) -> Question:
        with self._lock:
            if question.id not in self._questions:
                raise KeyError(question.id)
            self._questions[question.id] = deepcopy(question)
            return deepcopy(question)

    def delete_question(self, question_id: str) -> Question | None:
        with self._lock:
            return self._questions.pop(question_id, None)

    # --- Submissions ---

    def insert_submission(self, submission: Submission, policy: AttemptPolicy) -> Submission:
        """Insert atomically for an Active attempt; single policy allows one per pair."""
        with self._lock:
            previous = [
                s for s in self._submissions.values()
                if s.quiz_id == submission.quiz_id and s.submitter_id == submission.submitter_id
            ]
            if previous and policy is AttemptPolicy.SINGLE:
                raise ConflictError("You have already submitted this quiz.")
            record = self._attempts.get((submission.quiz_id, submission.submitter_id))
            if record is None or record.state is not AttemptState.ACTIVE:
                raise InvalidStateError("Open the quiz before submitting.")
            attempt_number = max((s.attempt_number for s in previous), default=0) + 1
            stored = replace(deepcopy(submission), attempt_number=attempt_number)
            self._submissions[stored.id] = stored
            self._attempts[(stored.quiz_id, stored.submitter_id)] = AttemptRecord(
                quiz_id=stored.quiz_id,
                submitter_id=stored.submitter_id,
                state=AttemptState.GRADED,
                attempt_number=attempt_number,
            )
            return deepcopy(stored)

    def get_submission(self, submission_id: str) -> Submission | None:
        with self._lock:
            submission = self._submissions.get(submission_id)
            return deepcopy(submission) if submission is not None else None

    def list_submissions(
        self,
        quiz_id: str | None = None,
        submitter_id: str | None = None,
    ) -> list[Submission]:
        with self._lock:
            matches = [
                s for s in self._submissions.values()
                if (quiz_id is None or s.quiz_id == quiz_id)
                and (submitter_id is None or s.submitter_id == submitter_id)
            ]
            matches.sort(key=lambda s: (s.submitted_at, s.attempt_number), reverse=True)
            return deepcopy(matches)

    # --- Attempts ---

    def get_attempt(self, quiz_id: str, submitter_id: str) -> AttemptRecord | None:
        with self._lock:
            record = self._attempts.get((quiz_id, submitter_id))
            return deepcopy(record) if record is not None else None

    def mark_attempt_active(self, quiz_id: str, submitter_id: str) -> AttemptRecord:
        """Open (or keep open) an attempt; a graded pair starts its next attempt."""
        with self._lock:
            key = (quiz_id, submitter_id)
            record = self._attempts.get(key)
            if record is None:
                record = AttemptRecord(quiz_id, submitter_id, AttemptState.ACTIVE, attempt_number=1)
            elif record.state is AttemptState.GRADED:
                record = AttemptRecord(
                    quiz_id, submitter_id, AttemptState.ACTIVE, attempt_number=record.attempt_number + 1
                )
            else:
                record.updated_at = utc_now()
            self._attempts[key] = record
            return deepcopy(record)
