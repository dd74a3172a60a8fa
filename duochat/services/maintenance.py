"""주기 정리 작업 - 비활성 방, 응답 없는 연결"""

import asyncio
import logging
from collections.abc import Callable

from duochat.services.signaling_hub import SignalingHub

logger = logging.getLogger(__name__)


class MaintenanceRunner:
    """앱 수명주기 동안 도는 정리 루프 관리"""

    def __init__(
        self,
        hub: SignalingHub,
        room_sweep_interval: float = 60.0,
        connection_sweep_interval: float = 60.0,
    ):
        self.hub = hub
        self.room_sweep_interval = room_sweep_interval
        self.connection_sweep_interval = connection_sweep_interval
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(self.room_sweep_interval, self.sweep_rooms)),
            asyncio.create_task(self._loop(self.connection_sweep_interval, self.sweep_connections)),
        ]
        logger.info("Maintenance tasks started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Maintenance tasks stopped")

    async def _loop(self, interval: float, job: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                job()
            except Exception:
                logger.exception(f"Maintenance job {job.__name__} failed")

    def sweep_rooms(self) -> list[str]:
        """비어 있고 오래된 방 삭제 후 서버 상태 기록"""
        removed = self.hub.store.sweep_inactive()
        stats = self.hub.stats()
        logger.info(
            f"Server status: {stats['rooms']} rooms, {stats['active_users']} users, "
            f"{stats['connections']} connections"
        )
        return removed

    def sweep_connections(self) -> list[str]:
        """오래 응답이 없는 연결 정보 삭제"""
        return self.hub.registry.sweep()
