"""
services/session_machine.py

시험 세션 상태 머신: 진행 중인 ExamSession 을 변경하는 유일한 주체.

상태 전이:
    Active ──제출 요청──▶ Submitting ──성공──▶ Completed
      │                     │
      │                     ├──실패(재시도 가능)──▶ Active
      │                     └──포기──▶ Abandoned  (응답은 무시됨)
      └──포기──▶ Abandoned

타이머(SessionClock)와 부정행위 감지(IntegrityMonitor)는 이 클래스가 소유하며
Active 를 벗어나는 모든 경로에서 정지시킨다.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Set

from config import TICK_SECONDS
from exam_prep_cbt.errors import DuplicateSubmissionError, InactiveSessionError
from exam_prep_cbt.models.session_state import (
    ExamSession,
    IntegrityEvent,
    IntegrityEventType,
    SessionStatus,
    SubmitTrigger,
    UNANSWERED,
    utc_now,
)
from exam_prep_cbt.services.integrity_monitor import BrowserSignalSource, IntegrityMonitor, SignalSource
from exam_prep_cbt.services.session_clock import SessionClock

logger = logging.getLogger(__name__)


class QuestionStatus(str, Enum):
    ANSWERED = "answered"
    FLAGGED = "flagged"
    CURRENT = "current"
    UNANSWERED = "unanswered"


_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.ACTIVE: {SessionStatus.SUBMITTING, SessionStatus.ABANDONED},
    SessionStatus.SUBMITTING: {SessionStatus.COMPLETED, SessionStatus.ACTIVE, SessionStatus.ABANDONED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.ABANDONED: set(),
}


class ExamSessionMachine:

    def __init__(
        self,
        session: ExamSession,
        signal_source: Optional[SignalSource] = None,
        tick_seconds: Optional[float] = TICK_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        self._session = session
        self._monotonic = monotonic
        self._now = now
        self.signal_source = signal_source or BrowserSignalSource()

        self._clock = SessionClock(
            on_expire=self._on_time_up,
            on_tick=self._on_clock_tick,
            tick_seconds=tick_seconds,
        )
        self._monitor = IntegrityMonitor(self.signal_source, record=self._append_integrity_event)
        self._forced_submit: Optional[Callable[[SubmitTrigger], None]] = None
        self._entered_at: Optional[float] = None
        self._started = False

    # ── 조회 ────────────────────────────────────────────────────────────────

    @property
    def session(self) -> ExamSession:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def clock(self) -> SessionClock:
        return self._clock

    @property
    def monitor(self) -> IntegrityMonitor:
        return self._monitor

    @property
    def is_active(self) -> bool:
        return self._session.status is SessionStatus.ACTIVE

    @property
    def visibility_lost_count(self) -> int:
        return sum(
            1 for e in self._session.integrity_log
            if e.type is IntegrityEventType.VISIBILITY_LOST
        )

    @property
    def answered_count(self) -> int:
        return sum(1 for v in self._session.answers.values() if v != UNANSWERED)

    @property
    def flagged_count(self) -> int:
        return len(self._session.flagged)

    @property
    def progress(self) -> float:
        return self.answered_count / self._session.total

    def is_answered(self, question_id: str) -> bool:
        return self._session.answers.get(question_id, UNANSWERED) != UNANSWERED

    def is_flagged(self, question_id: str) -> bool:
        return question_id in self._session.flagged

    def question_status(self, index: int) -> QuestionStatus:
        """
        문제 번호 그리드 색상용 상태.
        우선순위: answered > flagged > current > unanswered
        """
        if not 0 <= index < self._session.total:
            raise IndexError(f"question index out of range: {index}")
        question_id = self._session.questions[index].id
        if self.is_answered(question_id):
            return QuestionStatus.ANSWERED
        if self.is_flagged(question_id):
            return QuestionStatus.FLAGGED
        if index == self._session.current_index:
            return QuestionStatus.CURRENT
        return QuestionStatus.UNANSWERED

    # ── 수명 주기 ───────────────────────────────────────────────────────────

    def start(self) -> None:
        """첫 문제 표시 시점에 호출. 시작 시각 기록, 타이머 + 감지 시작."""
        if self._started:
            logger.warning("ExamSessionMachine.start: 이미 시작된 세션입니다 (무시)")
            return
        self._require_active()
        self._started = True
        self._session.start_time = self._now()
        self._entered_at = self._monotonic()
        self._clock.start(self._session.remaining_seconds)
        self._monitor.start()
        logger.info(
            f"시험 시작: {self._session.total}문항, 제한 시간 {self._session.remaining_seconds}초"
        )

    def close(self) -> None:
        """타이머와 감지를 정지. 여러 번 호출해도 안전."""
        self._clock.stop()
        self._monitor.stop()

    async def __aenter__(self) -> "ExamSessionMachine":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.status in (SessionStatus.ACTIVE, SessionStatus.SUBMITTING):
            self.abandon()
        self.close()
        return False

    def set_forced_submit_handler(self, handler: Callable[[SubmitTrigger], None]) -> None:
        """타이머 만료 시 호출될 강제 제출 함수 등록 (SubmissionPackager 가 등록)."""
        self._forced_submit = handler

    # ── 답안 / 이동 / 표시 ─────────────────────────────────────────────────

    def select_answer(self, question_id: str, option_index: int) -> None:
        """답안 선택. option_index = -1 은 선택 취소."""
        self._require_active()
        question = self._session.questions[self._require_question(question_id)]
        if not UNANSWERED <= option_index < question.option_count:
            raise ValueError(
                f"option index {option_index} out of range for question {question_id}"
            )
        self._session.answers[question_id] = option_index
        logger.debug(f"답안 선택: {question_id} → {option_index}")

    def clear_answer(self, question_id: str) -> None:
        self.select_answer(question_id, UNANSWERED)

    def navigate_to(self, index: int) -> bool:
        """범위 밖 인덱스는 조용히 무시한다 (UI 계층 버그로 간주)."""
        self._require_active()
        if not 0 <= index < self._session.total:
            logger.debug(f"범위 밖 이동 요청 무시: {index}")
            return False
        if index == self._session.current_index:
            return True
        self._flush_current_time()
        self._session.current_index = index
        return True

    def next_question(self) -> bool:
        return self.navigate_to(self._session.current_index + 1)

    def previous_question(self) -> bool:
        return self.navigate_to(self._session.current_index - 1)

    def toggle_flag(self, question_id: str) -> bool:
        """표시 토글. 토글 후 표시 여부 반환."""
        self._require_active()
        self._require_question(question_id)
        if question_id in self._session.flagged:
            self._session.flagged.discard(question_id)
            return False
        self._session.flagged.add(question_id)
        return True

    def accumulate_time(self, question_id: str, delta_seconds: float) -> float:
        self._require_question(question_id)
        if delta_seconds < 0:
            raise ValueError("delta_seconds must be non-negative")
        spent = self._session.time_spent.get(question_id, 0.0) + delta_seconds
        self._session.time_spent[question_id] = spent
        return spent

    # ── 제출 상태 전이 ─────────────────────────────────────────────────────

    def begin_submission(self, trigger: SubmitTrigger) -> None:
        """Active → Submitting. 제출 중이면 중복 제출로 거부."""
        if self.status is SessionStatus.SUBMITTING:
            logger.warning(f"중복 제출 요청 거부 (trigger={trigger.value})")
            raise DuplicateSubmissionError("이미 제출 중입니다.")
        self._require_active()
        self._flush_current_time()
        self._session.submit_trigger = trigger
        self._transition(SessionStatus.SUBMITTING)
        self.close()

    def complete_submission(self) -> None:
        self._transition(SessionStatus.COMPLETED)
        self.close()

    def fail_submission(self) -> None:
        """Submitting → Active. 답안과 남은 시간은 실패 시점 그대로 유지."""
        self._transition(SessionStatus.ACTIVE)
        self._entered_at = self._monotonic()
        self._clock.resume()
        self._monitor.start()

    def abandon(self) -> bool:
        """제출 없이 종료. 완료된 세션은 포기할 수 없다."""
        if self.status is SessionStatus.ABANDONED:
            return False
        if self.status is SessionStatus.COMPLETED:
            logger.info("완료된 세션은 포기할 수 없습니다 (무시)")
            return False
        self._transition(SessionStatus.ABANDONED)
        self.close()
        return True

    def snapshot(self) -> dict:
        s = self._session
        return {
            "status": s.status.value,
            "current_index": s.current_index,
            "total": s.total,
            "answers": dict(s.answers),
            "flagged": sorted(s.flagged, key=s.question_index),
            "answered_count": self.answered_count,
            "flagged_count": self.flagged_count,
            "remaining_seconds": s.remaining_seconds,
            "start_time": s.start_time.isoformat(),
            "visibility_lost_count": self.visibility_lost_count,
            "question_ids": [q.id for q in s.questions],
            "question_statuses": [self.question_status(i).value for i in range(s.total)],
        }

    # ── 내부 ────────────────────────────────────────────────────────────────

    def _transition(self, target: SessionStatus) -> None:
        current = self._session.status
        if target not in _TRANSITIONS[current]:
            raise InactiveSessionError(f"상태 전이 불가: {current.value} → {target.value}")
        self._session.status = target
        logger.info(f"세션 상태: {current.value} → {target.value}")

    def _require_active(self) -> None:
        if self._session.status is not SessionStatus.ACTIVE:
            raise InactiveSessionError(
                f"진행 중인 시험이 아닙니다 (status={self._session.status.value})"
            )

    def _require_question(self, question_id: str) -> int:
        try:
            return self._session.question_index(question_id)
        except KeyError:
            raise ValueError(f"unknown question id: {question_id}") from None

    def _flush_current_time(self) -> None:
        if self._entered_at is None:
            return
        now = self._monotonic()
        self.accumulate_time(self._session.current_question.id, max(0.0, now - self._entered_at))
        self._entered_at = now

    def _append_integrity_event(self, event_type: IntegrityEventType, detail: str) -> IntegrityEvent:
        self._require_active()
        event = IntegrityEvent(
            type=event_type,
            detail=detail,
            timestamp=self._now(),
            question_index=self._session.current_index,
        )
        self._session.integrity_log.append(event)
        logger.warning(
            f"부정행위 의심 이벤트: {event_type.value} ({detail}) "
            f"@ 문제 {event.question_index + 1}"
        )
        return event

    def _on_clock_tick(self, remaining: int) -> None:
        self._session.remaining_seconds = remaining

    def _on_time_up(self) -> None:
        if self.status is not SessionStatus.ACTIVE:
            logger.info(f"시간 종료 시점에 세션이 {self.status.value} 상태 → 강제 제출 생략")
            return
        if self._forced_submit is None:
            logger.warning("강제 제출 함수가 등록되지 않았습니다")
            return
        self._forced_submit(SubmitTrigger.TIMER)
