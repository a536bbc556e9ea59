"""
services/session_factory.py

시험 세션 생성: 조건 검증 → 문제 조회 → 상태 머신 + 제출기 구성.
조건 오류와 문제 조회 오류는 세션이 만들어지기 전에 발생한다.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from config import MAX_QUESTIONS, MIN_QUESTIONS, MINUTES_PER_QUESTION, REQUEST_TIMEOUT, TICK_SECONDS
from exam_prep_cbt.errors import ConfigurationError, ProviderError
from exam_prep_cbt.models.result_model import ResultReport
from exam_prep_cbt.models.session_state import ExamSession, SessionConfig
from exam_prep_cbt.services.backend_client import GradingService, QuestionSetProvider
from exam_prep_cbt.services.integrity_monitor import SignalSource
from exam_prep_cbt.services.session_machine import ExamSessionMachine
from exam_prep_cbt.services.submission_packager import SubmissionPackager

logger = logging.getLogger(__name__)


def exam_duration_seconds(question_count: int) -> int:
    """제한 시간 = ceil(문항 수 × 1.5)분."""
    return math.ceil(question_count * MINUTES_PER_QUESTION) * 60


def validate_config(config: SessionConfig) -> None:
    if not config.stream_id:
        raise ConfigurationError("Stream ID is required")
    if not MIN_QUESTIONS <= config.question_count <= MAX_QUESTIONS:
        raise ConfigurationError(
            f"Number of questions must be between {MIN_QUESTIONS} and {MAX_QUESTIONS}"
        )


@dataclass
class ExamRun:
    """한 번의 응시: 상태 머신과 제출기."""
    machine: ExamSessionMachine
    packager: SubmissionPackager

    @property
    def session(self) -> ExamSession:
        return self.machine.session


async def create_exam_run(
    config: SessionConfig,
    provider: QuestionSetProvider,
    grader: GradingService,
    signal_source: Optional[SignalSource] = None,
    on_result: Optional[Callable[[ResultReport], None]] = None,
    timeout: float = REQUEST_TIMEOUT,
    tick_seconds: Optional[float] = TICK_SECONDS,
) -> ExamRun:
    """
    문제를 받아 시작 대기 상태의 ExamRun 을 만든다.
    호출자가 첫 문제를 표시할 때 run.machine.start() (또는 async with run.machine).

    Raises:
        ConfigurationError: 조건 오류 (요청 전 거부)
        ProviderError:      조회 실패, 시간 초과, 빈 문제 목록
    """
    validate_config(config)

    try:
        questions = await asyncio.wait_for(provider.fetch_questions(config), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"문제 조회 시간 초과 ({timeout}s)")
        raise ProviderError("문제 생성 요청 시간이 초과되었습니다. 다시 시도해 주세요.") from None

    if not questions:
        raise ProviderError("No questions received from server")
    if len(questions) < config.question_count:
        logger.warning(f"요청 {config.question_count}문항 중 {len(questions)}문항만 출제됨")

    try:
        session = ExamSession(
            config=config,
            questions=questions,
            remaining_seconds=exam_duration_seconds(len(questions)),
        )
    except ValueError as e:
        raise ProviderError(f"잘못된 문제 세트: {e}") from e

    machine = ExamSessionMachine(session, signal_source=signal_source, tick_seconds=tick_seconds)
    packager = SubmissionPackager(machine, grader, on_result=on_result, timeout=timeout)
    logger.info(
        f"세션 생성: {session.total}문항, 난이도 {config.difficulty}, "
        f"제한 시간 {session.remaining_seconds // 60}분"
    )
    return ExamRun(machine=machine, packager=packager)
