"""연결별 백그라운드 작업 - 접속 직후 설정 전송, 모바일 keep-alive

연결이 열려 있는 동안만 돈다. 엔드포인트가 접속 시 start(), 종료 시 stop()을 호출한다.
"""

import asyncio
import copy
import logging

from duochat.core.signaling_config import (
    ICE_CONNECTION_TIMEOUT_MS,
    ICE_GATHERING_TIMEOUT_MS,
    MEDIA_CONSTRAINTS,
    PEER_CONNECTION_SETUP_TIMEOUT_MS,
    get_ice_servers,
)
from duochat.schemas.signaling import (
    ConnectionOptimizedMessage,
    ConnectionTimeouts,
    SignalingMessageType,
)
from duochat.services.signaling_hub import SignalingHub

logger = logging.getLogger(__name__)


class ConnectionTasks:
    """연결 하나에 묶인 주기/지연 작업 관리"""

    def __init__(
        self,
        hub: SignalingHub,
        connection_id: str,
        is_mobile: bool,
        keep_alive_interval: float = 15.0,
        optimized_delay: float = 1.0,
    ):
        self.hub = hub
        self.connection_id = connection_id
        self.is_mobile = is_mobile
        self.keep_alive_interval = keep_alive_interval
        self.optimized_delay = optimized_delay
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._send_optimized_later())]
        if self.is_mobile:
            self._tasks.append(asyncio.create_task(self._keep_alive_loop()))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _send_optimized_later(self) -> None:
        await asyncio.sleep(self.optimized_delay)
        await self.send_optimized()

    async def _keep_alive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.keep_alive_interval)
            if not await self.send_keep_alive():
                logger.debug(f"Keep-alive stopped for {self.connection_id}")
                return

    def build_optimized_message(self) -> ConnectionOptimizedMessage:
        return ConnectionOptimizedMessage(
            ice_servers=get_ice_servers(self.is_mobile),
            timeouts=ConnectionTimeouts(
                ice_connection=ICE_CONNECTION_TIMEOUT_MS,
                ice_gathering=ICE_GATHERING_TIMEOUT_MS,
                peer_connection=PEER_CONNECTION_SETUP_TIMEOUT_MS,
            ),
            constraints=copy.deepcopy(MEDIA_CONSTRAINTS),
        )

    async def send_optimized(self) -> bool:
        """접속 직후 연결 설정 전송"""
        message = self.build_optimized_message()
        return await self.hub.send(self.connection_id, message.model_dump(by_alias=True))

    async def send_keep_alive(self) -> bool:
        """모바일 연결 유지 신호 (전송 실패 시 False)"""
        return await self.hub.send(
            self.connection_id,
            {
                "type": SignalingMessageType.MOBILE_KEEP_ALIVE.value,
                "timestamp": self.hub.now_ms(),
                "connectionId": self.connection_id,
            },
        )
