from enum import Enum
from typing import List

from pydantic import AliasChoices, BaseModel, Field, field_validator


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class QuestionOption(BaseModel):
    """
    선택지 하나.
    정답 여부(isCorrect)는 서버에서만 판정하므로 세션 모델에는 담지 않는다.
    """
    text: str = Field(..., description="선택지 내용")

    model_config = {"extra": "ignore", "frozen": True}


class Question(BaseModel):
    """
    문제 생성 서비스가 내려주는 문제 모델.
    세션 시작 후에는 변경되지 않는다.
    """
    id: str = Field(
        ...,
        validation_alias=AliasChoices("id", "_id", "questionId"),
        description="문제 식별자 (세션 내 고유)"
    )
    text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("text", "questionText"),
        description="문제 본문 (마크업 포함 가능)"
    )
    options: List[QuestionOption] = Field(
        ...,
        description="보기 리스트 (순서 유지)"
    )
    difficulty: Difficulty = Field(
        default=Difficulty.MEDIUM,
        description="난이도"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # 생성 서비스는 ObjectId 문자열 또는 정수 id를 내려줄 수 있다
        return str(v) if v is not None else v

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[QuestionOption]) -> List[QuestionOption]:
        """보기는 최소 2개 이상이어야 한다."""
        if len(v) < 2:
            raise ValueError("options must contain at least 2 entries")
        return v

    @property
    def option_count(self) -> int:
        return len(self.options)
