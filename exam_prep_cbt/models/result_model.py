"""
models/result_model.py

채점 서비스 응답(TestResult)과 결과 화면용 파생 통계(ResultReport) 모델.
정답 판정은 서버가 수행하며, 여기서는 응답을 읽기 전용으로 다룬다.
"""

from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from exam_prep_cbt.models.question_model import Difficulty


class ResultSummary(BaseModel):
    total_questions: int = Field(..., ge=0, validation_alias=AliasChoices("totalQuestions", "total_questions"))
    correct_answers: int = Field(..., ge=0, validation_alias=AliasChoices("correctAnswers", "correct_answers"))
    wrong_answers: int = Field(default=0, ge=0, validation_alias=AliasChoices("wrongAnswers", "wrong_answers"))
    skipped_questions: int = Field(default=0, ge=0, validation_alias=AliasChoices("skippedQuestions", "skipped_questions"))
    percentage: float = Field(default=0.0, ge=0)
    score: float = 0
    time_taken_minutes: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("timeTakenMinutes", "timeTaken", "time_taken_minutes"),
    )

    model_config = {"frozen": True}


class QuestionResult(BaseModel):
    question_id: str = Field(..., validation_alias=AliasChoices("questionId", "_id", "question_id"))
    selected_option: int = Field(
        default=-1,
        validation_alias=AliasChoices("selectedOptionIndex", "selectedAnswer", "selectedOption", "selected_option"),
    )
    correct_option: int = Field(
        default=-1,
        validation_alias=AliasChoices("correctOptionIndex", "correctAnswer", "correct_option"),
    )
    is_correct: bool = Field(default=False, validation_alias=AliasChoices("isCorrect", "is_correct"))
    difficulty: Optional[Difficulty] = None
    explanation: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("question_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v


class TestResult(BaseModel):
    """채점 서비스 응답. per_question 은 출제 순서와 같다."""
    __test__ = False  # pytest 수집 대상 아님

    test_result_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("testResultId", "test_result_id"))
    summary: ResultSummary
    per_question: List[QuestionResult] = Field(
        default_factory=list,
        validation_alias=AliasChoices("perQuestion", "questions", "per_question"),
    )

    model_config = {"frozen": True}


class DifficultyStat(BaseModel):
    total: int = 0
    correct: int = 0
    percentage: float = 0.0


class ResultReport(BaseModel):
    """결과 화면에 표시할 파생 통계. TestResult 의 순수 함수 결과."""
    summary: ResultSummary
    accuracy: float
    attempted_questions: int
    attempt_accuracy: float
    grade: str
    difficulty_breakdown: Dict[str, DifficultyStat]
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    time_taken_label: str = ""
