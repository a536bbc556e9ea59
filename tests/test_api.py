import pytest
from fastapi.testclient import TestClient

import api.session as session_store
from api.app import create_app
from exam_prep_cbt.errors import ProviderError, SubmissionError

from conftest import FakeGrader, FakeProvider

START_BODY = {
    "streamId": "stream-1",
    "subjectIds": ["sub-1"],
    "topicIds": [],
    "difficulty": "Mixed",
    "numQuestions": 4,
}


@pytest.fixture
def grader():
    return FakeGrader()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(provider, grader):
    app = create_app(provider=provider, grader=grader, tick_seconds=None)
    with TestClient(app) as c:
        yield c


def test_start_exam_and_fetch_question(client):
    res = client.post("/api/start-exam", json=START_BODY)
    assert res.status_code == 200
    assert res.json() == {"total": 4, "remaining_seconds": 360, "ok": True}

    q = client.get("/api/question/1").json()
    assert q["id"] == "q1"
    assert q["options"] == ["option 0", "option 1", "option 2", "option 3"]
    assert q["saved_answer"] == -1
    assert q["status"] == "unanswered"
    assert "correct" not in str(q).lower()

    assert client.get("/api/question/9").status_code == 404


def test_invalid_config_returns_400(client, provider):
    res = client.post("/api/start-exam", json={**START_BODY, "numQuestions": 0})
    assert res.status_code == 400
    assert provider.calls == []


def test_provider_failure_then_retry(client, provider):
    provider.error = ProviderError("No questions found matching the criteria")
    res = client.post("/api/start-exam", json=START_BODY)
    assert res.status_code == 502
    assert res.json()["detail"] == "No questions found matching the criteria"
    assert client.get("/api/exam-state").status_code == 404

    provider.error = None
    res = client.post("/api/retry-start")
    assert res.status_code == 200
    assert len(provider.calls) == 2


def test_answer_flag_navigate_and_state(client):
    client.post("/api/start-exam", json=START_BODY)

    assert client.post("/api/save-answer", json={"question_id": "q0", "option_index": 2}).json()["answered_count"] == 1
    assert client.post("/api/save-answer", json={"question_id": "q0", "option_index": 7}).status_code == 400
    assert client.post("/api/toggle-flag", json={"question_id": "q2"}).json()["flagged"] is True
    assert client.post("/api/navigate", json={"index": 3}).json()["index"] == 3
    assert client.post("/api/navigate", json={"index": 42}).json() == {"index": 3, "moved": False, "ok": True}

    state = client.get("/api/exam-state").json()
    assert state["status"] == "active"
    assert state["answers"] == {"q0": 2}
    assert state["flagged"] == ["q2"]
    assert state["question_statuses"] == ["answered", "unanswered", "flagged", "current"]
    assert state["remaining_label"] == "6:00"
    assert state["low_time"] is False
    assert state["submit_error"] is None


def test_integrity_events_are_recorded_not_blocking(client, grader):
    client.post("/api/start-exam", json=START_BODY)
    res = client.post("/api/integrity-event", json={"type": "visibility_lost", "detail": "tab hidden"})
    assert res.json()["recorded"] is True
    assert res.json()["visibility_lost_count"] == 1
    client.post("/api/integrity-event", json={"type": "fullscreen_exited"})

    assert client.post("/api/submit-exam").status_code == 200
    body = grader.payloads[0].to_request()
    assert body["tabSwitchCount"] == 1
    assert [e["type"] for e in body["cheatingAttempts"]] == ["visibility_lost", "fullscreen_exited"]

    # 종료 후에는 기록되지 않는다
    res = client.post("/api/integrity-event", json={"type": "visibility_lost"})
    assert res.json()["recorded"] is False


def test_submit_and_results(client):
    client.post("/api/start-exam", json=START_BODY)
    assert client.get("/api/results").status_code == 400

    client.post("/api/save-answer", json={"question_id": "q0", "option_index": 0})
    client.post("/api/save-answer", json={"question_id": "q1", "option_index": 3})
    report = client.post("/api/submit-exam").json()
    assert report["summary"]["correct_answers"] == 1
    assert report["attempted_questions"] == 2
    assert report["grade"] == "D"
    assert set(report["difficulty_breakdown"]) == {"Easy", "Medium", "Hard"}

    assert client.get("/api/results").json() == report
    assert client.post("/api/submit-exam").status_code == 409
    assert client.post("/api/save-answer", json={"question_id": "q2", "option_index": 0}).status_code == 409


def test_submit_failure_keeps_session_answerable(client, grader):
    grader.error = SubmissionError("Failed to submit test", status_code=500)
    client.post("/api/start-exam", json=START_BODY)
    client.post("/api/save-answer", json={"question_id": "q3", "option_index": 1})

    res = client.post("/api/submit-exam")
    assert res.status_code == 502
    assert res.json()["detail"] == "Failed to submit test"
    state = client.get("/api/exam-state").json()
    assert state["status"] == "active"
    assert state["answers"] == {"q3": 1}
    assert state["submit_error"] == "Failed to submit test"

    grader.error = None
    assert client.post("/api/submit-exam").status_code == 200
    assert len(grader.payloads) == 2


def test_abandon_sends_nothing(client, grader):
    client.post("/api/start-exam", json=START_BODY)
    client.post("/api/save-answer", json={"question_id": "q0", "option_index": 1})
    assert client.post("/api/abandon").json() == {"abandoned": True, "status": "abandoned", "ok": True}
    assert client.post("/api/submit-exam").status_code == 409
    assert grader.payloads == []


def test_reset_abandons_running_exam(client):
    client.post("/api/start-exam", json=START_BODY)
    sid = client.cookies.get("cbt_session")
    run = session_store.get(sid, "exam_run")
    client.post("/api/reset")
    assert run.machine.status.value == "abandoned"
    assert client.get("/api/exam-state").status_code == 404


def test_unexpected_grader_error_is_502_and_retryable(client, grader):
    grader.error = RuntimeError("grader crashed")
    client.post("/api/start-exam", json=START_BODY)

    res = client.post("/api/submit-exam")
    assert res.status_code == 502
    assert "grader crashed" in res.json()["detail"]
    assert client.get("/api/exam-state").json()["status"] == "active"

    grader.error = None
    assert client.post("/api/submit-exam").status_code == 200


def test_shutdown_abandons_running_exams(provider, grader):
    app = create_app(provider=provider, grader=grader, tick_seconds=None)
    with TestClient(app) as c:
        c.post("/api/start-exam", json=START_BODY)
        run = session_store.get(c.cookies.get("cbt_session"), "exam_run")
        assert run.machine.is_active

    assert run.machine.status.value == "abandoned"
    assert not run.machine.clock.running
    assert grader.payloads == []
