import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from exam_prep_cbt.errors import SubmissionError
from exam_prep_cbt.models.question_model import Question
from exam_prep_cbt.models.result_model import TestResult
from exam_prep_cbt.models.session_state import ExamSession, SessionConfig
from exam_prep_cbt.models.submission_model import SubmissionPayload
from exam_prep_cbt.services.session_machine import ExamSessionMachine

DIFFICULTIES = ["Easy", "Medium", "Hard"]
CORRECT_OPTION = 0


def make_questions(n: int) -> List[Question]:
    return [
        Question(
            id=f"q{i}",
            text=f"<p>Question {i}</p>",
            options=[{"text": f"option {k}"} for k in range(4)],
            difficulty=DIFFICULTIES[i % 3],
        )
        for i in range(n)
    ]


def make_config(n: int = 10, **overrides) -> SessionConfig:
    values = {
        "stream_id": "stream-1",
        "subject_ids": ["sub-1", "sub-2"],
        "topic_ids": ["top-1"],
        "difficulty": "Mixed",
        "question_count": n,
    }
    values.update(overrides)
    return SessionConfig(**values)


class FakeClock:
    """수동으로 전진시키는 monotonic 시계."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeProvider:

    def __init__(self, questions: Optional[List[Question]] = None, error: Optional[Exception] = None):
        self.questions = questions
        self.error = error
        self.calls: List[SessionConfig] = []

    async def fetch_questions(self, config: SessionConfig) -> List[Question]:
        self.calls.append(config)
        if self.error:
            raise self.error
        if self.questions is None:
            return make_questions(config.question_count)
        return list(self.questions)


class FakeGrader:
    """
    option 0 을 정답으로 채점하는 가짜 채점 서비스.
    gate 가 설정되면 gate.set() 전까지 응답을 보류한다.
    """

    def __init__(self, error: Optional[SubmissionError] = None):
        self.error = error
        self.payloads: List[SubmissionPayload] = []
        self.gate: Optional[asyncio.Event] = None

    async def submit(self, payload: SubmissionPayload) -> TestResult:
        self.payloads.append(payload)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return grade(payload)


def grade(payload: SubmissionPayload) -> TestResult:
    per_question = []
    correct = wrong = skipped = 0
    for i, answer in enumerate(payload.answers):
        is_correct = answer.selected_option == CORRECT_OPTION
        if answer.selected_option == -1:
            skipped += 1
        elif is_correct:
            correct += 1
        else:
            wrong += 1
        per_question.append({
            "questionId": answer.question_id,
            "selectedOptionIndex": answer.selected_option,
            "correctOptionIndex": CORRECT_OPTION,
            "isCorrect": is_correct,
            "difficulty": DIFFICULTIES[i % 3],
            "explanation": "",
        })
    total = len(payload.answers)
    return TestResult.model_validate({
        "summary": {
            "totalQuestions": total,
            "correctAnswers": correct,
            "wrongAnswers": wrong,
            "skippedQuestions": skipped,
            "percentage": round(correct / total * 100, 2) if total else 0,
            "score": correct * 4 - wrong,
            "timeTaken": 3,
        },
        "perQuestion": per_question,
    })


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def machine(fake_clock) -> ExamSessionMachine:
    session = ExamSession(config=make_config(5), questions=make_questions(5), remaining_seconds=480)
    m = ExamSessionMachine(session, tick_seconds=None, monotonic=fake_clock)
    m.start()
    return m
