from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from conftest import OTHER_STUDENT, OTHER_TEACHER, STUDENT, TEACHER
from quizvault.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from quizvault.core.models import (
    Assignment,
    AttemptPolicy,
    AttemptState,
    Quiz,
    Submission,
)
from quizvault.core.services.quiz_store import QuizStore, new_id
from quizvault.core.services.submission_guard import SubmissionGuard


def _quiz(store: QuizStore, **overrides) -> Quiz:
    fields = dict(
        id="quiz-1",
        title="Guarded quiz",
        owner_id=TEACHER.viewer_id,
        duration_minutes=5,
        assignment=Assignment(viewer_id=STUDENT.viewer_id),
    )
    fields.update(overrides)
    return store.add_quiz(Quiz(**fields))


def _submission(quiz_id: str = "quiz-1", submitter_id: str = STUDENT.viewer_id) -> Submission:
    return Submission(id=new_id(), quiz_id=quiz_id, submitter_id=submitter_id, answers=[], score=0, total_marks=1)


def test_inactive_quiz_is_unavailable_and_creates_no_attempt():
    store = QuizStore()
    _quiz(store, is_active=False)
    guard = SubmissionGuard(store)

    with pytest.raises(UnavailableError):
        guard.begin_attempt("quiz-1", STUDENT)
    with pytest.raises(UnavailableError):
        guard.check_submission("quiz-1", STUDENT)

    assert store.get_attempt("quiz-1", STUDENT.viewer_id) is None
    assert guard.attempt_state("quiz-1", STUDENT.viewer_id) is AttemptState.NOT_STARTED


def test_only_assigned_viewers_and_the_owner_get_access():
    store = QuizStore()
    _quiz(store, assignment=Assignment(audience=frozenset({STUDENT.viewer_id})))
    guard = SubmissionGuard(store)

    quiz, attempt = guard.begin_attempt("quiz-1", STUDENT)
    assert attempt.state is AttemptState.ACTIVE

    _quiz_again, owner_attempt = guard.begin_attempt(quiz.id, TEACHER)
    assert owner_attempt is None

    with pytest.raises(ForbiddenError):
        guard.begin_attempt("quiz-1", OTHER_STUDENT)
    with pytest.raises(ForbiddenError):
        guard.begin_attempt("quiz-1", OTHER_TEACHER)
    with pytest.raises(ForbiddenError):
        guard.check_submission("quiz-1", TEACHER)
    with pytest.raises(NotFoundError):
        guard.begin_attempt("missing", STUDENT)


def test_single_policy_is_terminal_after_grading():
    store = QuizStore()
    quiz = _quiz(store)
    guard = SubmissionGuard(store)

    guard.begin_attempt(quiz.id, STUDENT)
    guard.record(quiz, _submission())

    assert guard.attempt_state(quiz.id, STUDENT.viewer_id) is AttemptState.GRADED
    with pytest.raises(ConflictError):
        guard.begin_attempt(quiz.id, STUDENT)
    with pytest.raises(ConflictError):
        guard.check_submission(quiz.id, STUDENT)
    with pytest.raises(ConflictError):
        guard.record(quiz, _submission())


def test_multiple_policy_numbers_each_attempt():
    store = QuizStore()
    quiz = _quiz(store, attempt_policy=AttemptPolicy.MULTIPLE)
    guard = SubmissionGuard(store)

    numbers = []
    for _ in range(3):
        _quiz_copy, attempt = guard.begin_attempt(quiz.id, STUDENT)
        assert attempt.state is AttemptState.ACTIVE
        numbers.append(guard.record(quiz, _submission()).attempt_number)

    assert numbers == [1, 2, 3]


def test_deployment_override_beats_quiz_policy():
    store = QuizStore()
    quiz = _quiz(store, attempt_policy=AttemptPolicy.MULTIPLE)
    guard = SubmissionGuard(store, policy_override=AttemptPolicy.SINGLE)

    guard.begin_attempt(quiz.id, STUDENT)
    guard.record(quiz, _submission())

    with pytest.raises(ConflictError):
        guard.record(quiz, _submission())


def test_concurrent_single_attempt_submissions_yield_one_winner():
    store = QuizStore()
    quiz = _quiz(store)
    guard = SubmissionGuard(store)
    workers = 8
    barrier = threading.Barrier(workers)
    guard.begin_attempt(quiz.id, STUDENT)

    def submit_once():
        barrier.wait()
        try:
            return guard.record(quiz, _submission())
        except ConflictError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(lambda _: submit_once(), range(workers)))

    winners = [o for o in outcomes if isinstance(o, Submission)]
    conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
    assert len(winners) == 1
    assert len(conflicts) == workers - 1
    assert len(store.list_submissions(quiz_id=quiz.id)) == 1


def test_submitting_requires_an_active_attempt():
    store = QuizStore()
    quiz = _quiz(store)
    guard = SubmissionGuard(store)

    with pytest.raises(InvalidStateError):
        guard.check_submission(quiz.id, STUDENT)
    with pytest.raises(InvalidStateError):
        guard.record(quiz, _submission())

    assert store.list_submissions(quiz_id=quiz.id) == []
    assert guard.attempt_state(quiz.id, STUDENT.viewer_id) is AttemptState.NOT_STARTED


def test_multiple_policy_needs_a_fresh_open_for_each_attempt():
    store = QuizStore()
    quiz = _quiz(store, attempt_policy=AttemptPolicy.MULTIPLE)
    guard = SubmissionGuard(store)

    guard.begin_attempt(quiz.id, STUDENT)
    guard.record(quiz, _submission())

    with pytest.raises(InvalidStateError):
        guard.check_submission(quiz.id, STUDENT)
    with pytest.raises(InvalidStateError):
        guard.record(quiz, _submission())

    guard.begin_attempt(quiz.id, STUDENT)
    assert guard.check_submission(quiz.id, STUDENT).id == quiz.id
    assert guard.record(quiz, _submission()).attempt_number == 2


def test_concurrent_submissions_after_one_open_record_one_attempt():
    store = QuizStore()
    quiz = _quiz(store, attempt_policy=AttemptPolicy.MULTIPLE)
    guard = SubmissionGuard(store)
    workers = 6
    barrier = threading.Barrier(workers)
    guard.begin_attempt(quiz.id, STUDENT)

    def submit_once():
        barrier.wait()
        try:
            return guard.record(quiz, _submission())
        except InvalidStateError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(lambda _: submit_once(), range(workers)))

    winners = [o for o in outcomes if isinstance(o, Submission)]
    assert len(winners) == 1
    assert winners[0].attempt_number == 1
    assert len(store.list_submissions(quiz_id=quiz.id)) == 1
