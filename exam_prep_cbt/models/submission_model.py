"""
models/submission_model.py

채점 서비스(POST /tests/submit)로 보내는 제출 본문 모델.
필드명은 서버 계약에 맞춰 camelCase 로 직렬화된다 (model_dump(by_alias=True)).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from exam_prep_cbt.models.session_state import (
    DifficultyChoice,
    IntegrityEvent,
    SubmitTrigger,
    UNANSWERED,
)


class AnswerEntry(BaseModel):
    question_id: str = Field(..., serialization_alias="questionId")
    selected_option: int = Field(default=UNANSWERED, ge=UNANSWERED, serialization_alias="selectedOption")
    time_taken: int = Field(default=0, ge=0, serialization_alias="timeTaken")


class SubmissionPayload(BaseModel):
    stream_id: str = Field(..., serialization_alias="streamId")
    subject_ids: List[str] = Field(default_factory=list, serialization_alias="subjectIds")
    topic_ids: List[str] = Field(default_factory=list, serialization_alias="topicIds")
    answers: List[AnswerEntry]
    start_time: datetime = Field(..., serialization_alias="startTime")
    end_time: datetime = Field(..., serialization_alias="endTime")
    difficulty: DifficultyChoice
    cheating_attempts: List[IntegrityEvent] = Field(default_factory=list, serialization_alias="cheatingAttempts")
    tab_switch_count: int = Field(default=0, ge=0, serialization_alias="tabSwitchCount")
    submit_trigger: Optional[SubmitTrigger] = Field(default=None, serialization_alias="submitTrigger")

    def to_request(self) -> dict:
        """JSON 전송용 dict (ISO-8601 시각, camelCase 키)."""
        return self.model_dump(mode="json", by_alias=True)
