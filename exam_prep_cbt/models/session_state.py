"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반. 직렬화/역직렬화 및 타입 안전성 확보.
상태 변경은 services/session_machine.py 만 수행한다.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, Field, field_validator, model_validator

from exam_prep_cbt.models.question_model import Question

# 미응답 / 선택 취소 모두 제출 시 -1 로 표기
UNANSWERED = -1

DifficultyChoice = Literal["Easy", "Medium", "Hard", "Mixed"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMER = "timer"


class IntegrityEventType(str, Enum):
    VISIBILITY_LOST = "visibility_lost"
    FULLSCREEN_EXITED = "fullscreen_exited"


class IntegrityEvent(BaseModel):
    """부정행위 의심 이벤트 1건. 차단하지 않고 기록만 한다."""
    type: IntegrityEventType
    detail: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    question_index: int = Field(..., ge=0, serialization_alias="questionIndex")


class SessionConfig(BaseModel):
    """
    시험 생성 조건. 세션 시작 전에 한 번 만들어지고 이후 변경되지 않는다.

    Attributes:
        stream_id:      계열 ID
        subject_ids:    과목 ID 목록 (비어 있으면 전체 과목)
        topic_ids:      단원 ID 목록 (비어 있으면 전체 단원)
        difficulty:     Easy / Medium / Hard / Mixed
        question_count: 요청 문항 수
    """
    stream_id: str = Field(default="", alias="streamId")
    subject_ids: List[str] = Field(default_factory=list, alias="subjectIds")
    topic_ids: List[str] = Field(default_factory=list, alias="topicIds")
    difficulty: DifficultyChoice = "Mixed"
    question_count: int = Field(default=20, alias="numQuestions")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("subject_ids", "topic_ids")
    @classmethod
    def dedupe_ids(cls, v: List[str]) -> List[str]:
        # 집합 의미지만 요청 순서는 보존
        return list(dict.fromkeys(v))

    def to_request(self) -> dict:
        """문제 생성 서비스(POST /tests/generate) 요청 본문."""
        return self.model_dump(by_alias=True)


class ExamSession(BaseModel):
    """
    사용자의 시험 세션 전체 상태.

    Attributes:
        config:             세션 생성 조건
        questions:          출제된 문제 (순서 고정, 길이 N >= 1)
        current_index:      현재 문제 인덱스 (0-based)
        answers:            {question.id: 선택한 보기 인덱스}, -1 은 선택 취소
        flagged:            표시(flag)한 문제 id 집합
        time_spent:         {question.id: 누적 체류 시간(초)}
        start_time:         첫 문제 표시 시각
        remaining_seconds:  남은 시간 (초)
        integrity_log:      부정행위 의심 이벤트 로그
        status:             세션 상태
        submit_trigger:     마지막 제출 요청의 출처 (수동 / 타이머)
    """

    config: SessionConfig
    questions: List[Question] = Field(..., min_length=1)
    current_index: int = Field(default=0, ge=0)
    answers: Dict[str, int] = Field(default_factory=dict)
    flagged: Set[str] = Field(default_factory=set)
    time_spent: Dict[str, float] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=utc_now)
    remaining_seconds: int = Field(default=0, ge=0)
    integrity_log: List[IntegrityEvent] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    submit_trigger: Optional[SubmitTrigger] = None

    model_config = {"validate_assignment": False}

    @model_validator(mode="after")
    def validate_question_ids(self) -> "ExamSession":
        ids = [q.id for q in self.questions]
        if len(set(ids)) != len(ids):
            raise ValueError("question ids must be unique within a session")
        if self.current_index >= len(self.questions):
            raise ValueError("current_index out of range")
        return self

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    def has_question(self, question_id: str) -> bool:
        return any(q.id == question_id for q in self.questions)

    def question_index(self, question_id: str) -> int:
        for idx, q in enumerate(self.questions):
            if q.id == question_id:
                return idx
        raise KeyError(question_id)
