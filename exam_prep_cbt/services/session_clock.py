"""
services/session_clock.py

시험 카운트다운 타이머.
- 1초마다 tick() → 남은 시간 1 감소
- 0 도달 시 정지 후 강제 제출 콜백을 정확히 한 번 호출
- 세션이 Active 를 벗어나면 반드시 stop() (완료/포기 후 제출이 발동되는 일 방지)

tick_seconds=None 이면 내부 루프 없이 호출자가 tick() 을 직접 구동한다 (테스트용).
"""

import asyncio
import logging
from typing import Callable, Optional

from config import LOW_TIME_WARNING_SECONDS, TICK_SECONDS

logger = logging.getLogger(__name__)


class SessionClock:

    def __init__(
        self,
        on_expire: Callable[[], None],
        on_tick: Optional[Callable[[int], None]] = None,
        tick_seconds: Optional[float] = TICK_SECONDS,
    ):
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._tick_seconds = tick_seconds
        self._remaining = 0
        self._running = False
        self._expired = False
        self._task: Optional[asyncio.Task] = None

    # ── 상태 ────────────────────────────────────────────────────────────────

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    # ── 수명 주기 ───────────────────────────────────────────────────────────

    def start(self, total_seconds: int) -> bool:
        """남은 시간을 total_seconds 로 설정하고 카운트다운 시작. 이미 동작 중이면 무시."""
        if self._running:
            logger.warning("SessionClock.start: 이미 동작 중인 타이머입니다 (무시)")
            return False
        if self._expired:
            logger.warning("SessionClock.start: 이미 만료된 타이머는 다시 시작할 수 없습니다")
            return False
        if total_seconds <= 0:
            logger.warning(f"SessionClock.start: 잘못된 시간 {total_seconds}초 (무시)")
            return False

        self._remaining = int(total_seconds)
        self._begin()
        logger.info(f"타이머 시작: {self._remaining}초")
        return True

    def resume(self) -> bool:
        """
        제출 실패 후 Active 복귀 시 남은 시간 그대로 재개.
        남은 시간은 절대 초기화하지 않는다.
        """
        if self._running or self._expired or self._remaining <= 0:
            return False
        self._begin()
        logger.info(f"타이머 재개: {self._remaining}초 남음")
        return True

    def stop(self) -> None:
        """타이머 정지. 여러 번 호출해도 안전."""
        if self._task is not None:
            if not self._task.done() and self._task is not _current_task():
                self._task.cancel()
            self._task = None
        if self._running:
            self._running = False
            logger.info(f"타이머 정지: {self._remaining}초 남음")

    def tick(self) -> None:
        """1초 경과 처리. 만료 후 늦게 도착한 tick 은 무시한다."""
        if self._expired or not self._running:
            logger.debug("SessionClock.tick: 정지/만료 상태의 tick 무시")
            return

        self._remaining = max(0, self._remaining - 1)
        if self._on_tick:
            self._on_tick(self._remaining)

        if self._remaining == 0:
            self._expired = True
            self.stop()
            logger.info("시험 시간 종료 → 강제 제출")
            self._on_expire()

    # ── 내부 ────────────────────────────────────────────────────────────────

    def _begin(self) -> None:
        self._running = True
        if self._tick_seconds is None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self._running and not self._expired:
            await asyncio.sleep(self._tick_seconds)
            self.tick()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


# ── 표시용 헬퍼 ───────────────────────────────────────────────────────────────

def format_remaining(seconds: int) -> str:
    """남은 시간 문자열. 1시간 이상이면 h:mm:ss, 아니면 m:ss."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def is_low_time(seconds: int) -> bool:
    """5분 미만이면 경고 표시."""
    return seconds < LOW_TIME_WARNING_SECONDS
