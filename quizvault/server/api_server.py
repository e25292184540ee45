"""FastAPI server that exposes the quiz, question, submission and result endpoints.

Authentication happens upstream; this layer trusts the viewer identity headers
it is handed and maps core errors to status codes.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from quizvault.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quizvault.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    VIEWER_ID_HEADER,
    VIEWER_ROLE_HEADER,
)
from quizvault.constants.quiz_constants import DEFAULT_AI_DIFFICULTY
from quizvault.core.errors import QuestionValidationError, QuizEngineError, QuizValidationError
from quizvault.core.markdown_renderer import renderer
from quizvault.core.models import (
    AiSettings,
    AttemptPolicy,
    CreationMode,
    GradedAnswer,
    PublicQuestion,
    Quiz,
    SubmittedAnswer,
    Viewer,
    ViewerRole,
)
from quizvault.core.question_parser import question_to_payload
from quizvault.core.quiz_manager import QuizManager, QuizView, ResultView

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "not_found": 404,
    "forbidden": 403,
    "unavailable": 423,
    "conflict": 409,
    "invalid_state": 422,
    "upstream_failure": 502,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AiSettingsPayload(_CamelModel):
    topic: str
    number_of_questions: int = Field(alias="numberOfQuestions")
    difficulty: str = DEFAULT_AI_DIFFICULTY


class QuizCreatePayload(_CamelModel):
    """Payload schema for creating a quiz."""

    title: str
    description: str = ""
    duration: int
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    audience: list[str] = Field(default_factory=list)
    creation_mode: CreationMode = Field(default=CreationMode.MANUAL, alias="creationMode")
    unique_per_viewer: bool = Field(default=True, alias="uniquePerViewer")
    ai_settings: AiSettingsPayload | None = Field(default=None, alias="aiSettings")
    attempt_policy: AttemptPolicy | None = Field(default=None, alias="attemptPolicy")
    is_active: bool = Field(default=True, alias="isActive")


class QuizUpdatePayload(_CamelModel):
    title: str | None = None
    description: str | None = None
    duration: int | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
    unique_per_viewer: bool | None = Field(default=None, alias="uniquePerViewer")
    attempt_policy: AttemptPolicy | None = Field(default=None, alias="attemptPolicy")
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    audience: list[str] | None = None


class MatchPairPayload(BaseModel):
    left: str
    right: str


class QuestionFields(_CamelModel):
    """Question body; type-specific checks happen in the core parser."""

    question_type: str = Field(default="mcq", alias="questionType")
    question_text: str = Field(alias="questionText")
    marks: int | None = None
    options: list[str] | None = None
    correct_option: int | None = Field(default=None, alias="correctOption")
    correct_answer: str | None = Field(default=None, alias="correctAnswer")
    blanks: list[str] | None = None
    match_pairs: list[MatchPairPayload] | None = Field(default=None, alias="matchPairs")

    def to_core(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"quiz_id"})


class QuestionCreatePayload(QuestionFields):
    quiz_id: str = Field(alias="quizId")


class BulkQuestionsPayload(_CamelModel):
    quiz_id: str = Field(alias="quizId")
    questions: list[QuestionFields]


class AnswerPayload(_CamelModel):
    """One submitted answer; the value's shape depends on the question type."""

    question_id: str = Field(alias="questionId")
    selected_value: Any = Field(default=None, alias="selectedValue")


class SubmissionPayload(_CamelModel):
    quiz_id: str = Field(alias="quizId")
    answers: list[AnswerPayload]
    grading_token: str | None = Field(default=None, alias="gradingToken")


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def get_viewer(
    viewer_id: str | None = Header(default=None, alias=VIEWER_ID_HEADER),
    viewer_role: str | None = Header(default=None, alias=VIEWER_ROLE_HEADER),
) -> Viewer:
    if not viewer_id or not viewer_id.strip():
        raise HTTPException(status_code=401, detail={"kind": "unauthenticated", "message": "Viewer identity missing."})
    try:
        role = ViewerRole((viewer_role or "student").strip().lower())
    except ValueError as exc:
        raise HTTPException(
            status_code=401,
            detail={"kind": "unauthenticated", "message": "Unknown viewer role."},
        ) from exc
    return Viewer(viewer_id=viewer_id.strip(), role=role)


# --- Serialization ---


def _quiz_summary(quiz: Quiz, total_marks: int | None = None) -> dict[str, object]:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "duration": quiz.duration_minutes,
        "totalMarks": quiz.total_marks if total_marks is None else total_marks,
    }


def _quiz_details(quiz: Quiz) -> dict[str, object]:
    details = _quiz_summary(quiz)
    details.update(
        {
            "isActive": quiz.is_active,
            "creationMode": quiz.creation_mode.value,
            "uniquePerViewer": quiz.unique_per_viewer,
            "attemptPolicy": quiz.attempt_policy.value,
            "assignedTo": quiz.assignment.viewer_id,
            "audience": sorted(quiz.assignment.audience),
            "ownerId": quiz.owner_id,
            "createdAt": quiz.created_at.isoformat(),
            "aiSettings": (
                {
                    "topic": quiz.ai_settings.topic,
                    "numberOfQuestions": quiz.ai_settings.question_count,
                    "difficulty": quiz.ai_settings.difficulty,
                }
                if quiz.ai_settings is not None
                else None
            ),
        }
    )
    return details


def _public_question(question: PublicQuestion) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": question.id,
        "questionType": question.question_type.value,
        "questionText": question.question_text,
        "questionHtml": renderer.render_fragment(question.question_text),
        "marks": question.marks,
    }
    if question.options is not None:
        payload["options"] = question.options
    if question.blank_count is not None:
        payload["blankCount"] = question.blank_count
    if question.left_items is not None:
        payload["leftItems"] = question.left_items
        payload["rightItems"] = question.right_items
    return payload


def _quiz_view(view: QuizView) -> dict[str, object]:
    body: dict[str, object] = {
        "quiz": _quiz_summary(view.quiz, view.total_marks),
        "questions": [_public_question(q) for q in view.questions],
    }
    if view.grading_token is not None:
        body["gradingToken"] = view.grading_token
    if view.grading_key is not None:
        body["gradingKey"] = [question_to_payload(q) for q in view.grading_key]
    return body


def _graded_answer(answer: GradedAnswer) -> dict[str, object]:
    payload: dict[str, object] = {
        "questionId": answer.question_id,
        "questionType": answer.question_type.value,
        "questionText": answer.question_text,
        "marks": answer.marks,
        "earnedMarks": answer.earned_marks,
        "isCorrect": answer.is_correct,
        "pendingReview": answer.pending_review,
        "selectedValue": answer.submitted_value,
    }
    payload.update(answer.answer_key)
    return payload


def _result(view: ResultView, include_answers: bool = True) -> dict[str, object]:
    submission = view.submission
    body: dict[str, object] = {
        "submissionId": submission.id,
        "quizId": submission.quiz_id,
        "quizTitle": view.quiz.title if view.quiz is not None else None,
        "submitterId": submission.submitter_id,
        "score": submission.score,
        "totalMarks": submission.total_marks,
        "percentage": view.percentage,
        "attemptNumber": submission.attempt_number,
        "submittedAt": submission.submitted_at.isoformat(),
    }
    if include_answers:
        body["answers"] = [_graded_answer(a) for a in submission.answers]
    return body


# --- Application ---


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @app.exception_handler(QuizEngineError)
    async def _engine_error(_request: Request, exc: QuizEngineError) -> JSONResponse:
        status = _STATUS_BY_KIND.get(exc.kind, 500)
        return JSONResponse(status_code=status, content={"detail": {"kind": exc.kind, "message": exc.message}})

    @app.exception_handler(QuestionValidationError)
    @app.exception_handler(QuizValidationError)
    async def _validation_error(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": {"kind": "validation_error", "message": str(exc)}})

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": {"kind": "server_error", "message": "Something went wrong. Please try again."}},
        )

    @app.get("/healthz")
    def healthz() -> dict[str, object]:
        return {"status": "ok", "version": APP_VERSION}

    # --- Quizzes ---

    @app.post("/api/quizzes", status_code=201)
    def create_quiz(
        payload: QuizCreatePayload,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        ai_settings = None
        if payload.ai_settings is not None:
            ai_settings = AiSettings(
                topic=payload.ai_settings.topic,
                question_count=payload.ai_settings.number_of_questions,
                difficulty=payload.ai_settings.difficulty,
            )
        quiz = manager.create_quiz(
            viewer,
            title=payload.title,
            duration_minutes=payload.duration,
            assigned_to=payload.assigned_to,
            audience=payload.audience,
            description=payload.description,
            creation_mode=payload.creation_mode,
            unique_per_viewer=payload.unique_per_viewer,
            ai_settings=ai_settings,
            attempt_policy=payload.attempt_policy,
            is_active=payload.is_active,
        )
        return {"quiz": _quiz_details(quiz)}

    @app.get("/api/quizzes")
    def list_quizzes(
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        listings = manager.list_quizzes(viewer)
        if viewer.is_teacher:
            return {"quizzes": [_quiz_details(item.quiz) for item in listings]}
        return {
            "quizzes": [
                {**_quiz_summary(item.quiz), "hasSubmitted": item.has_submitted} for item in listings
            ]
        }

    @app.get("/api/quizzes/{quiz_id}")
    def open_quiz(
        quiz_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _quiz_view(manager.open_quiz(quiz_id, viewer))

    @app.patch("/api/quizzes/{quiz_id}")
    def update_quiz(
        quiz_id: str,
        payload: QuizUpdatePayload,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        changes = payload.model_dump(exclude_unset=True)
        if "duration" in changes:
            changes["duration_minutes"] = changes.pop("duration")
        return {"quiz": _quiz_details(manager.update_quiz(quiz_id, viewer, changes))}

    @app.delete("/api/quizzes/{quiz_id}")
    def delete_quiz(
        quiz_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.delete_quiz(quiz_id, viewer)
        return {"deleted": quiz_id}

    # --- Questions ---

    @app.post("/api/questions", status_code=201)
    def create_question(
        payload: QuestionCreatePayload,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        outcome = manager.add_questions(payload.quiz_id, viewer, [payload.to_core()])
        return {"question": question_to_payload(outcome.questions[0]), "totalMarks": outcome.total_marks}

    @app.post("/api/questions/bulk", status_code=201)
    def bulk_create_questions(
        payload: BulkQuestionsPayload,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        outcome = manager.add_questions(payload.quiz_id, viewer, [q.to_core() for q in payload.questions])
        return {
            "questions": [question_to_payload(q) for q in outcome.questions],
            "totalMarks": outcome.total_marks,
        }

    @app.get("/api/questions/{quiz_id}")
    def list_questions(
        quiz_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        quiz = manager.get_quiz(quiz_id, viewer)
        return {
            "quiz": _quiz_details(quiz),
            "questions": [question_to_payload(q) for q in manager.list_questions(quiz_id, viewer)],
        }

    @app.put("/api/questions/{question_id}")
    def update_question(
        question_id: str,
        payload: QuestionFields,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        outcome = manager.update_question(question_id, viewer, payload.to_core())
        return {"question": question_to_payload(outcome.questions[0]), "totalMarks": outcome.total_marks}

    @app.delete("/api/questions/{question_id}")
    def delete_question(
        question_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        outcome = manager.delete_question(question_id, viewer)
        return {"deleted": question_id, "totalMarks": outcome.total_marks}

    # --- Submissions and results ---

    @app.post("/api/submissions", status_code=201)
    def submit_quiz(
        payload: SubmissionPayload,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        receipt = manager.submit(
            payload.quiz_id,
            viewer,
            [SubmittedAnswer(a.question_id, a.selected_value) for a in payload.answers],
            grading_token=payload.grading_token,
        )
        return {
            "submissionId": receipt.submission_id,
            "score": receipt.score,
            "totalMarks": receipt.total_marks,
            "percentage": receipt.percentage,
            "attemptNumber": receipt.attempt_number,
            "submittedAt": receipt.submitted_at.isoformat(),
        }

    @app.get("/api/submissions/my")
    def my_submissions(
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return {"submissions": [_result(v, include_answers=False) for v in manager.list_my_submissions(viewer)]}

    @app.get("/api/submissions/quiz/{quiz_id}")
    def quiz_submissions(
        quiz_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        views = manager.list_quiz_submissions(quiz_id, viewer)
        return {"submissions": [_result(v, include_answers=False) for v in views]}

    @app.get("/api/submissions/{submission_id}")
    def submission_details(
        submission_id: str,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _result(manager.get_submission(submission_id, viewer))

    @app.get("/api/results/{quiz_id}")
    def quiz_result(
        quiz_id: str,
        attempt: int | None = None,
        viewer: Viewer = Depends(get_viewer),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _result(manager.get_result(quiz_id, viewer, attempt_number=attempt))

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API in the foreground until interrupted."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    uvicorn.Server(config).run()
