"""
services/integrity_monitor.py

부정행위 감지 (탭 전환 / 전체화면 해제).
이벤트는 기록만 하며 답안·이동을 절대 막지 않는다.

신호 출처(SignalSource)는 외부에서 주입한다. 브라우저 클라이언트가 보내는 신호는
BrowserSignalSource 가 받아서 구독자에게 전달한다 (api/routes.py 참고).
"""

import logging
from typing import Callable, List, Optional, Protocol

from exam_prep_cbt.models.session_state import IntegrityEvent, IntegrityEventType

logger = logging.getLogger(__name__)

Handler = Callable[[str], None]
Unsubscribe = Callable[[], None]


class SignalSource(Protocol):
    """화면 가시성 / 전체화면 신호 구독 인터페이스. 반환값은 구독 해제 함수."""

    def on_visibility_lost(self, handler: Handler) -> Unsubscribe: ...

    def on_fullscreen_exited(self, handler: Handler) -> Unsubscribe: ...


class BrowserSignalSource:
    """클라이언트가 보고한 이벤트를 구독자에게 전달하는 신호 출처."""

    def __init__(self):
        self._handlers = {
            IntegrityEventType.VISIBILITY_LOST: [],
            IntegrityEventType.FULLSCREEN_EXITED: [],
        }

    def on_visibility_lost(self, handler: Handler) -> Unsubscribe:
        return self._subscribe(IntegrityEventType.VISIBILITY_LOST, handler)

    def on_fullscreen_exited(self, handler: Handler) -> Unsubscribe:
        return self._subscribe(IntegrityEventType.FULLSCREEN_EXITED, handler)

    def emit(self, event_type: IntegrityEventType, detail: str = "") -> int:
        """구독자에게 이벤트 전달. 전달된 구독자 수 반환."""
        handlers = list(self._handlers[IntegrityEventType(event_type)])
        for handler in handlers:
            handler(detail)
        return len(handlers)

    def subscriber_count(self) -> int:
        return sum(len(h) for h in self._handlers.values())

    def _subscribe(self, event_type: IntegrityEventType, handler: Handler) -> Unsubscribe:
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return _unsubscribe


class IntegrityMonitor:
    """
    신호를 구독해 세션 로그에 이벤트를 추가한다.

    Args:
        source: 신호 출처 (SignalSource)
        record: 세션 상태 머신의 이벤트 기록 함수. 로그 추가는 상태 머신만 수행한다.
    """

    def __init__(
        self,
        source: SignalSource,
        record: Callable[[IntegrityEventType, str], IntegrityEvent],
    ):
        self._source = source
        self._record = record
        self._unsubscribers: List[Unsubscribe] = []
        self._visibility_lost_count = 0

    @property
    def running(self) -> bool:
        return bool(self._unsubscribers)

    @property
    def visibility_lost_count(self) -> int:
        """탭 전환 횟수 (경고 표시용, 제출/이동 판단에 사용하지 않음)."""
        return self._visibility_lost_count

    def start(self) -> None:
        if self.running:
            return
        self._unsubscribers = [
            self._source.on_visibility_lost(self._handle_visibility_lost),
            self._source.on_fullscreen_exited(self._handle_fullscreen_exited),
        ]
        logger.info("부정행위 감지 시작")

    def stop(self) -> None:
        if not self.running:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info("부정행위 감지 종료")

    def record_event(self, event_type: IntegrityEventType, detail: str = "") -> Optional[IntegrityEvent]:
        """이벤트 1건 기록. 예외를 밖으로 던지지 않는다."""
        if not self.running:
            logger.debug(f"감지 중이 아니므로 이벤트 무시: {event_type}")
            return None
        try:
            event = self._record(IntegrityEventType(event_type), detail)
        except Exception:
            logger.exception(f"부정행위 이벤트 기록 실패: {event_type}")
            return None
        if event.type is IntegrityEventType.VISIBILITY_LOST:
            self._visibility_lost_count += 1
        return event

    def _handle_visibility_lost(self, detail: str) -> None:
        self.record_event(IntegrityEventType.VISIBILITY_LOST, detail or "Tab switched or window hidden")

    def _handle_fullscreen_exited(self, detail: str) -> None:
        self.record_event(IntegrityEventType.FULLSCREEN_EXITED, detail or "Exited fullscreen mode")
