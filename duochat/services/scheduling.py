"""지연 실행 및 재전송 정책

방 삭제 유예, 입장 알림 재전송 등 "나중에 한 번 실행"하는 작업을 담당한다.
취소 토큰은 없다. 예약된 작업은 실행 시점에 상태를 다시 확인해야 한다.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# 재전송 정책 최대 시도 횟수
MAX_RETRY_ATTEMPTS = 5

DeferredCallback = Callable[[], Awaitable[Any] | Any]


class DeferredScheduler(Protocol):
    """지연 실행기 프로토콜"""

    def call_later(self, delay: float, callback: DeferredCallback) -> None:
        """delay초 뒤 callback 실행

        Args:
            delay: 지연 시간 (초)
            callback: 인자 없는 함수 또는 코루틴 함수
        """
        ...


class AsyncioScheduler:
    """실행 중인 이벤트 루프 위에서 동작하는 지연 실행기"""

    def __init__(self):
        self._handles: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: DeferredCallback) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            self._handles.discard(handle)
            self._run(callback)

        handle = loop.call_later(max(delay, 0.0), _fire)
        self._handles.add(handle)

    def _run(self, callback: DeferredCallback) -> None:
        try:
            result = callback()
        except Exception:
            logger.exception("Deferred callback failed")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Deferred task failed: %s", error, exc_info=error)

    @property
    def pending_count(self) -> int:
        return len(self._handles) + len(self._tasks)

    def cancel_all(self) -> None:
        """예약된 모든 작업 취소 (종료 시 호출)"""
        for handle in list(self._handles):
            handle.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._handles.clear()
        self._tasks.clear()


@dataclass(frozen=True)
class RetryPolicy:
    """고정 지연 목록 기반의 유한 재전송 정책

    예: RetryPolicy((0.1, 0.5, 1.0)) -> +100ms, +500ms, +1000ms에 한 번씩 전송 후 종료
    수신 측은 중복 알림을 멱등하게 처리해야 한다.
    """

    delays: tuple[float, ...]

    def __post_init__(self):
        if not self.delays:
            raise ValueError("RetryPolicy requires at least one delay")
        if len(self.delays) > MAX_RETRY_ATTEMPTS:
            raise ValueError(f"RetryPolicy allows at most {MAX_RETRY_ATTEMPTS} attempts")
        if any(delay < 0 for delay in self.delays):
            raise ValueError("RetryPolicy delays must be non-negative")

    @classmethod
    def from_delays(cls, delays: list[float] | tuple[float, ...]) -> "RetryPolicy":
        return cls(tuple(float(delay) for delay in delays))

    @property
    def attempts(self) -> int:
        return len(self.delays)

    def schedule(self, scheduler: DeferredScheduler, send: DeferredCallback) -> int:
        """정책의 각 지연마다 send 예약

        Returns:
            예약된 시도 횟수
        """
        for delay in self.delays:
            scheduler.call_later(delay, send)
        return self.attempts
