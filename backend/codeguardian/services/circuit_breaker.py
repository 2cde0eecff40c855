"""LLM quota 초과 시 호출을 차단하는 서킷 브레이커

상태 전이:
    CLOSED --(quota 오류)--> OPEN --(쿨다운 경과)--> HALF_OPEN
    HALF_OPEN --(시험 성공)--> CLOSED
    HALF_OPEN --(시험 quota 오류)--> OPEN
"""

import enum
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class BreakerState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class QuotaCircuitBreaker:
    """quota 초과 감지 시 일정 시간 동안 외부 호출을 막는다.

    Args:
        cooldown_seconds: OPEN 유지 시간
        clock: 단조 시계 (테스트에서 주입)
    """

    def __init__(
        self,
        cooldown_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> BreakerState:
        """현재 상태. 쿨다운이 지난 OPEN은 HALF_OPEN으로 보고한다."""
        if self._state is BreakerState.OPEN and self._cooldown_elapsed():
            return BreakerState.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    def _cooldown_elapsed(self) -> bool:
        return (
            self._opened_at is not None
            and self._clock() - self._opened_at >= self._cooldown_seconds
        )

    def allow_request(self) -> bool:
        """외부 호출 허용 여부를 판단한다.

        HALF_OPEN에서는 시험 요청 하나만 통과시킨다.
        """
        with self._lock:
            if self._state is BreakerState.OPEN and self._cooldown_elapsed():
                self._state = BreakerState.HALF_OPEN
                logger.info("[CircuitBreaker] 쿨다운 경과, HALF_OPEN 전환, 시험 요청 허용")

            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state is BreakerState.HALF_OPEN:
                logger.info("[CircuitBreaker] 시험 성공, CLOSED 복귀")
                self._state = BreakerState.CLOSED
                self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        """quota 이외의 오류. 시험였다면 다음 요청이 다시 시험할 수 있게 한다."""
        with self._lock:
            self._trial_in_flight = False

    def record_quota_exceeded(self) -> None:
        """quota 오류 발생. 이미 OPEN이면 쿨다운을 연장하지 않는다."""
        with self._lock:
            self._trial_in_flight = False
            if self._state is BreakerState.OPEN:
                return
            self._state = BreakerState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                f"[CircuitBreaker] LLM quota 초과: {self._cooldown_seconds:.0f}초 동안 "
                f"LLM 검증을 건너뜁니다"
            )
