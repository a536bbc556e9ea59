"""
errors.py

시험 세션 엔진 예외 계층.
API 계층(api/routes.py)이 이 예외들을 HTTPException으로 변환한다.
"""

from typing import Optional


class ExamEngineError(Exception):
    """시험 세션 엔진 기본 예외."""


class ConfigurationError(ExamEngineError, ValueError):
    """SessionConfig가 잘못된 경우. 세션 생성 전에 거부된다."""


class ProviderError(ExamEngineError):
    """문제 세트 조회 실패 (네트워크, 타임아웃, 빈 응답). 세션은 Active에 도달하지 않는다."""


class SubmissionError(ExamEngineError):
    """
    답안 제출 실패.

    message 는 서버가 내려준 오류 메시지를 그대로 담는다 (재시도 UI에 표시).
    """

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DuplicateSubmissionError(SubmissionError):
    """이미 제출 중(Submitting)인 세션에 대한 중복 제출 요청."""

    retryable = False


class InactiveSessionError(ExamEngineError):
    """Active 상태가 아닌 세션에 대한 변경 요청."""
