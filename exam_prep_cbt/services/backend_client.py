"""
services/backend_client.py

외부 백엔드 HTTP 클라이언트.
  - HttpQuestionSetProvider : POST /tests/generate → List[Question]
  - HttpGradingService      : POST /tests/submit   → TestResult

자동 재시도는 하지 않는다. 시험 시간 중 느린 서버에 반복 요청하면
남은 시간을 불공정하게 소모하므로 재시도는 항상 사용자가 직접 한다.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from config import BACKEND_BASE_URL, BACKEND_TOKEN, REQUEST_TIMEOUT
from exam_prep_cbt.errors import ProviderError, SubmissionError
from exam_prep_cbt.models.question_model import Question
from exam_prep_cbt.models.result_model import TestResult
from exam_prep_cbt.models.session_state import SessionConfig
from exam_prep_cbt.models.submission_model import SubmissionPayload

logger = logging.getLogger(__name__)


class QuestionSetProvider(Protocol):
    async def fetch_questions(self, config: SessionConfig) -> List[Question]: ...


class GradingService(Protocol):
    async def submit(self, payload: SubmissionPayload) -> TestResult: ...


def _error_message(response: httpx.Response, fallback: str) -> str:
    """비정상 응답에서 사람이 읽을 수 있는 오류 메시지 추출."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or fallback
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return fallback


class _BackendClient:

    def __init__(
        self,
        base_url: str = BACKEND_BASE_URL,
        token: str = BACKEND_TOKEN,
        timeout: float = REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        return await self._client.post(
            f"{self.base_url}{path}",
            json=body,
            headers=self._headers,
            timeout=self.timeout,
        )


class HttpQuestionSetProvider(_BackendClient):

    async def fetch_questions(self, config: SessionConfig) -> List[Question]:
        logger.info(f"문제 생성 요청: {config.to_request()}")
        try:
            response = await self._post("/tests/generate", config.to_request())
        except httpx.TimeoutException:
            logger.error(f"문제 생성 요청 시간 초과 ({self.timeout}s)")
            raise ProviderError("문제 생성 요청 시간이 초과되었습니다. 다시 시도해 주세요.")
        except httpx.RequestError as e:
            logger.error(f"문제 생성 요청 실패: {e}")
            raise ProviderError(f"문제 생성 서버에 연결할 수 없습니다: {e}")

        if response.is_error:
            message = _error_message(response, f"HTTP error! status: {response.status_code}")
            logger.error(f"문제 생성 실패 ({response.status_code}): {message}")
            raise ProviderError(message)

        try:
            data = response.json()
        except ValueError:
            raise ProviderError("문제 생성 응답을 해석할 수 없습니다.")

        raw_questions = data.get("questions") if isinstance(data, dict) else None
        if not raw_questions:
            raise ProviderError("No questions received from server")

        try:
            questions = [Question.model_validate(q) for q in raw_questions]
        except ValidationError as e:
            logger.error(f"문제 형식 오류: {e}")
            raise ProviderError(f"잘못된 문제 데이터: {e.error_count()}건 검증 실패")

        logger.info(f"✅ 문제 {len(questions)}개 수신")
        return questions


class HttpGradingService(_BackendClient):

    async def submit(self, payload: SubmissionPayload) -> TestResult:
        try:
            response = await self._post("/tests/submit", payload.to_request())
        except httpx.TimeoutException:
            logger.error(f"제출 요청 시간 초과 ({self.timeout}s)")
            raise SubmissionError("제출 요청 시간이 초과되었습니다. 다시 시도해 주세요.")
        except httpx.RequestError as e:
            logger.error(f"제출 요청 실패: {e}")
            raise SubmissionError(f"채점 서버에 연결할 수 없습니다: {e}")

        if response.is_error:
            message = _error_message(response, "Failed to submit test")
            logger.error(f"제출 실패 ({response.status_code}): {message}")
            raise SubmissionError(message, status_code=response.status_code)

        try:
            return TestResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"채점 응답 형식 오류: {e}")
            raise SubmissionError("채점 결과를 해석할 수 없습니다.", status_code=response.status_code)
