from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from conftest import OTHER_TEACHER, STUDENT, TEACHER, fill_blank_payload, mcq_payload
from quizvault.server.api_server import create_api_app


def _headers(viewer):
    return {"X-Viewer-Id": viewer.viewer_id, "X-Viewer-Role": viewer.role.value}


@pytest.fixture
def client(manager):
    return TestClient(create_api_app(manager))


@pytest.fixture
def quiz_id(client):
    response = client.post(
        "/api/quizzes",
        json={"title": "HTTP quiz", "duration": 10, "assignedTo": STUDENT.viewer_id},
        headers=_headers(TEACHER),
    )
    assert response.status_code == 201
    return response.json()["quiz"]["id"]


@pytest.fixture
def question_id(client, quiz_id):
    response = client.post(
        "/api/questions",
        json={"quizId": quiz_id, **mcq_payload(text="What is **2 + 2**?")},
        headers=_headers(TEACHER),
    )
    assert response.status_code == 201
    assert response.json()["totalMarks"] == 1
    return response.json()["question"]["id"]


def test_healthz(client):
    assert client.get("/healthz").json()["status"] == "ok"


def test_student_view_has_no_answers(client, quiz_id, question_id):
    response = client.get(f"/api/quizzes/{quiz_id}", headers=_headers(STUDENT))

    assert response.status_code == 200
    body = response.json()
    assert "gradingKey" not in body
    question = body["questions"][0]
    assert question["id"] == question_id
    assert "correctOption" not in question
    assert "<strong>2 + 2</strong>" in question["questionHtml"]
    assert body["quiz"]["totalMarks"] == 1


def test_owner_view_includes_the_grading_key(client, quiz_id, question_id):
    body = client.get(f"/api/quizzes/{quiz_id}", headers=_headers(TEACHER)).json()

    assert body["gradingKey"][0]["correctOption"] == 2


def test_submit_and_read_result(client, quiz_id, question_id):
    assert client.get(f"/api/quizzes/{quiz_id}", headers=_headers(STUDENT)).status_code == 200
    response = client.post(
        "/api/submissions",
        json={"quizId": quiz_id, "answers": [{"questionId": question_id, "selectedValue": 2}]},
        headers=_headers(STUDENT),
    )
    assert response.status_code == 201
    assert response.json()["percentage"] == 100

    again = client.post(
        "/api/submissions",
        json={"quizId": quiz_id, "answers": []},
        headers=_headers(STUDENT),
    )
    assert again.status_code == 409
    assert again.json()["detail"]["kind"] == "conflict"

    result = client.get(f"/api/results/{quiz_id}", headers=_headers(STUDENT)).json()
    assert result["score"] == 1
    assert result["answers"][0]["isCorrect"] is True
    assert result["answers"][0]["correctOption"] == 2

    mine = client.get("/api/submissions/my", headers=_headers(STUDENT)).json()["submissions"]
    assert [s["quizId"] for s in mine] == [quiz_id]
    for_quiz = client.get(f"/api/submissions/quiz/{quiz_id}", headers=_headers(TEACHER)).json()
    assert for_quiz["submissions"][0]["submitterId"] == STUDENT.viewer_id


def test_submit_without_opening_is_invalid_state(client, quiz_id, question_id):
    response = client.post(
        "/api/submissions",
        json={"quizId": quiz_id, "answers": [{"questionId": question_id, "selectedValue": 2}]},
        headers=_headers(STUDENT),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "invalid_state"


def test_question_listing_is_owner_only(client, quiz_id, question_id):
    response = client.get(f"/api/questions/{quiz_id}", headers=_headers(TEACHER))
    assert response.status_code == 200
    body = response.json()
    assert body["quiz"]["id"] == quiz_id
    assert [q["id"] for q in body["questions"]] == [question_id]
    assert body["questions"][0]["correctOption"] == 2

    other_teacher = client.get(f"/api/questions/{quiz_id}", headers=_headers(OTHER_TEACHER))
    assert other_teacher.status_code == 403
    assert client.get(f"/api/questions/{quiz_id}", headers=_headers(STUDENT)).status_code == 403


def test_bulk_questions_update_and_delete_keep_totals(client, quiz_id, question_id):
    bulk = client.post(
        "/api/questions/bulk",
        json={"quizId": quiz_id, "questions": [fill_blank_payload(marks=3), mcq_payload(marks=2)]},
        headers=_headers(TEACHER),
    )
    assert bulk.status_code == 201
    assert bulk.json()["totalMarks"] == 6

    updated = client.put(
        f"/api/questions/{question_id}",
        json=mcq_payload(marks=4),
        headers=_headers(TEACHER),
    )
    assert updated.json()["totalMarks"] == 9

    deleted = client.delete(f"/api/questions/{question_id}", headers=_headers(TEACHER))
    assert deleted.json()["totalMarks"] == 5


def test_error_kinds_map_to_status_codes(client, quiz_id, question_id):
    assert client.get(f"/api/quizzes/{quiz_id}").status_code == 401
    assert client.get("/api/quizzes/missing", headers=_headers(STUDENT)).status_code == 404
    assert client.get(
        f"/api/quizzes/{quiz_id}", headers={"X-Viewer-Id": "teacher-9", "X-Viewer-Role": "teacher"}
    ).status_code == 403

    invalid = client.post(
        "/api/questions",
        json={"quizId": quiz_id, **mcq_payload(), "options": ["a"]},
        headers=_headers(TEACHER),
    )
    assert invalid.status_code == 422
    assert invalid.json()["detail"]["kind"] == "validation_error"

    patched = client.patch(f"/api/quizzes/{quiz_id}", json={"isActive": False}, headers=_headers(TEACHER))
    assert patched.json()["quiz"]["isActive"] is False
    unavailable = client.get(f"/api/quizzes/{quiz_id}", headers=_headers(STUDENT))
    assert unavailable.status_code == 423
    assert unavailable.json()["detail"]["kind"] == "unavailable"


def test_listing_and_deleting_quizzes(client, quiz_id):
    listed = client.get("/api/quizzes", headers=_headers(STUDENT)).json()["quizzes"]
    assert [(q["id"], q["hasSubmitted"]) for q in listed] == [(quiz_id, False)]

    assert client.delete(f"/api/quizzes/{quiz_id}", headers=_headers(TEACHER)).status_code == 200
    assert client.get("/api/quizzes", headers=_headers(TEACHER)).json()["quizzes"] == []
