"""
services/submission_packager.py

최종 답안 제출.
  - build_payload(): 출제 순서 그대로 답안 목록 구성 (미응답은 -1)
  - SubmissionPackager.submit(): 제출 1회 전송, 실패 시 Active 로 되돌려 재시도 허용

동시에 진행 중인 제출은 최대 1건. Submitting 상태가 중복 제출을 막는다.
타이머 만료에 의한 강제 제출도 같은 경로를 탄다 (trigger 만 다름).
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from config import REQUEST_TIMEOUT
from exam_prep_cbt.errors import SubmissionError
from exam_prep_cbt.models.result_model import ResultReport, TestResult
from exam_prep_cbt.models.session_state import (
    ExamSession,
    IntegrityEventType,
    SessionStatus,
    SubmitTrigger,
    UNANSWERED,
    utc_now,
)
from exam_prep_cbt.models.submission_model import AnswerEntry, SubmissionPayload
from exam_prep_cbt.services.backend_client import GradingService
from exam_prep_cbt.services.exam_service import build_report
from exam_prep_cbt.services.session_machine import ExamSessionMachine

logger = logging.getLogger(__name__)


def build_payload(session: ExamSession, end_time: Optional[datetime] = None) -> SubmissionPayload:
    """
    ExamSession → 제출 본문.

    answers 는 항상 출제 순서이며 길이는 문항 수와 같다.
    탐색 순서와 무관하다.
    """
    answers = [
        AnswerEntry(
            question_id=q.id,
            selected_option=session.answers.get(q.id, UNANSWERED),
            time_taken=int(round(session.time_spent.get(q.id, 0))),
        )
        for q in session.questions
    ]
    config = session.config
    return SubmissionPayload(
        stream_id=config.stream_id,
        subject_ids=list(config.subject_ids),
        topic_ids=list(config.topic_ids),
        answers=answers,
        start_time=session.start_time,
        end_time=end_time or utc_now(),
        difficulty=config.difficulty,
        cheating_attempts=list(session.integrity_log),
        tab_switch_count=sum(
            1 for e in session.integrity_log if e.type is IntegrityEventType.VISIBILITY_LOST
        ),
        submit_trigger=session.submit_trigger,
    )


class SubmissionPackager:
    """
    Args:
        machine:   세션 상태 머신
        grader:    채점 서비스 클라이언트
        on_result: 채점 성공 시 ResultReport 를 전달받는 콜백 (선택)
        timeout:   제출 요청 제한 시간 (초). 초과 시 재시도 가능한 오류로 처리
    """

    def __init__(
        self,
        machine: ExamSessionMachine,
        grader: GradingService,
        on_result: Optional[Callable[[ResultReport], None]] = None,
        timeout: float = REQUEST_TIMEOUT,
        now: Callable[[], datetime] = utc_now,
    ):
        self._machine = machine
        self._grader = grader
        self._on_result = on_result
        self._timeout = timeout
        self._now = now
        self._forced_task: Optional[asyncio.Task] = None

        self.attempts = 0
        self.last_error: Optional[SubmissionError] = None
        self.result: Optional[TestResult] = None
        self.report: Optional[ResultReport] = None

        machine.set_forced_submit_handler(self._on_forced_submit)

    @property
    def in_flight(self) -> bool:
        return self._machine.status is SessionStatus.SUBMITTING

    async def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> Optional[ResultReport]:
        """
        답안 제출.

        Returns:
            채점 결과 ResultReport. 응답 도착 전에 세션이 포기되었으면 None.

        Raises:
            DuplicateSubmissionError: 이미 제출 중인 경우 (요청을 보내지 않음)
            InactiveSessionError:     완료/포기된 세션
            SubmissionError:          네트워크 오류, 비정상 응답, 시간 초과, 기타 채점 오류 (세션은 Active 로 복귀)
            asyncio.CancelledError:   호출 task 취소 (세션은 Active 로 복귀 후 전파)
        """
        payload = self._prepare(trigger)
        return await self._send(payload)

    async def wait_forced(self) -> None:
        """진행 중인 강제 제출이 끝날 때까지 대기."""
        if self._forced_task is not None:
            await asyncio.gather(self._forced_task, return_exceptions=True)

    # ── 내부 ────────────────────────────────────────────────────────────────

    def _prepare(self, trigger: SubmitTrigger) -> SubmissionPayload:
        self._machine.begin_submission(trigger)
        self.attempts += 1
        self.last_error = None
        payload = build_payload(self._machine.session, end_time=self._now())
        unanswered = sum(1 for a in payload.answers if a.selected_option == UNANSWERED)
        logger.info(
            f"📤 답안 제출 #{self.attempts} (trigger={trigger.value}): "
            f"{len(payload.answers)}문항, 미응답 {unanswered}, 의심 이벤트 {len(payload.cheating_attempts)}"
        )
        return payload

    async def _send(self, payload: SubmissionPayload) -> Optional[ResultReport]:
        try:
            result = await asyncio.wait_for(self._grader.submit(payload), timeout=self._timeout)
        except asyncio.TimeoutError:
            error = SubmissionError("제출 요청 시간이 초과되었습니다. 다시 시도해 주세요.")
            self._handle_failure(error)
            raise error from None
        except SubmissionError as e:
            self._handle_failure(e)
            raise
        except asyncio.CancelledError:
            # 요청 취소(클라이언트 연결 끊김 등): 세션을 Submitting 에 남겨두지 않는다
            self._handle_failure(SubmissionError("제출 요청이 취소되었습니다. 다시 시도해 주세요."))
            raise
        except Exception as e:
            logger.exception("채점 서비스 호출 중 예기치 않은 오류")
            error = SubmissionError(f"제출 중 오류가 발생했습니다: {e}")
            self._handle_failure(error)
            raise error from e

        if self._machine.status is not SessionStatus.SUBMITTING:
            logger.info(f"세션이 이미 {self._machine.status.value} 상태 → 채점 응답 무시")
            return None

        self._machine.complete_submission()
        self.result = result
        self.report = build_report(result)
        logger.info(
            f"✅ 채점 완료: {result.summary.correct_answers}/{result.summary.total_questions} "
            f"({result.summary.percentage}%) 등급 {self.report.grade}"
        )
        if self._on_result:
            self._on_result(self.report)
        return self.report

    def _handle_failure(self, error: SubmissionError) -> None:
        if self._machine.status is SessionStatus.SUBMITTING:
            self._machine.fail_submission()
            self.last_error = error
            logger.error(f"❌ 제출 실패 (재시도 가능): {error.message}")
        else:
            logger.info(f"세션이 이미 {self._machine.status.value} 상태 → 제출 실패 응답 무시")

    def _on_forced_submit(self, trigger: SubmitTrigger) -> None:
        """타이머 만료 시 호출. 이미 제출 중이면 다시 보내지 않는다."""
        if self._machine.status is not SessionStatus.ACTIVE:
            logger.info(f"강제 제출 생략: 세션 상태 {self._machine.status.value}")
            return
        payload = self._prepare(trigger)
        self._forced_task = asyncio.get_running_loop().create_task(self._send_forced(payload))

    async def _send_forced(self, payload: SubmissionPayload) -> None:
        try:
            await self._send(payload)
        except SubmissionError as e:
            # last_error 에 남아 사용자가 직접 재시도한다
            logger.error(f"강제 제출 실패: {e.message}")
