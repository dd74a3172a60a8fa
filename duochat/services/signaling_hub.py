"""시그널링 허브 - 핸들러가 공유하는 상태와 전송 도우미

방 저장소, 연결 레지스트리, 소켓 관리자, 지연 실행기를 하나로 묶어
앱 상태(app.state.hub)에 주입한다. 모듈 전역 싱글톤은 두지 않는다.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from duochat.core.config import Settings
from duochat.core.telemetry import get_signaling_metrics
from duochat.schemas.signaling import ErrorMessage, SignalingErrorCode, SignalingMessageType
from duochat.services.connection_registry import ConnectionRegistry
from duochat.services.room_store import RoomStore
from duochat.services.scheduling import AsyncioScheduler, RetryPolicy
from duochat.services.signaling_service import ConnectionManager
from duochat.utils.clock import to_ms

logger = logging.getLogger(__name__)


class SignalingHub:
    """시그널링 상태 컨테이너"""

    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        connections: ConnectionManager,
        scheduler: AsyncioScheduler,
        user_connected_policy: RetryPolicy,
        existing_users_policy: RetryPolicy,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.registry = registry
        self.connections = connections
        self.scheduler = scheduler
        self.user_connected_policy = user_connected_policy
        self.existing_users_policy = existing_users_policy
        self._clock = clock
        self.store.on_room_deleted = self._on_room_deleted

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "SignalingHub":
        scheduler = AsyncioScheduler()
        store = RoomStore(
            scheduler=scheduler,
            clock=clock,
            grace_seconds=settings.empty_room_grace_seconds,
            inactive_ttl_seconds=settings.inactive_room_ttl_seconds,
            max_members=settings.max_room_members,
        )
        registry = ConnectionRegistry(clock=clock, stale_after_seconds=settings.stale_connection_seconds)
        return cls(
            store=store,
            registry=registry,
            connections=ConnectionManager(),
            scheduler=scheduler,
            user_connected_policy=RetryPolicy.from_delays(settings.user_connected_retry_delays),
            existing_users_policy=RetryPolicy.from_delays(settings.existing_users_retry_delays),
            clock=clock,
        )

    def now_ms(self) -> int:
        return to_ms(self._clock())

    def stats(self) -> dict[str, int]:
        """현재 방/사용자/연결 수 (헬스 체크, 게이지 공용)"""
        return {
            "rooms": len(self.store),
            "active_users": self.store.total_members,
            "connections": self.connections.connection_count,
        }

    # ===== 전송 =====

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        return await self.connections.send(connection_id, message)

    async def send_to_user(self, room_id: str, user_id: str, message: dict[str, Any]) -> bool:
        """방 멤버에게 전송 (전송 시점의 연결로 해석)"""
        room = self.store.get(room_id)
        if room is None:
            return False
        connection_id = room.members.get(user_id)
        if connection_id is None:
            return False
        return await self.send(connection_id, message)

    async def send_to_members(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude_user_id: str | None = None,
    ) -> int:
        """방 멤버 전체에 전송 (특정 사용자 제외 가능)

        Returns:
            전송에 성공한 멤버 수
        """
        room = self.store.get(room_id)
        if room is None:
            return 0
        targets = [
            connection_id
            for user_id, connection_id in room.members.items()
            if user_id != exclude_user_id
        ]
        return await self.connections.send_many(targets, message)

    async def ack(
        self,
        connection_id: str,
        data: dict[str, Any],
        event: str,
        payload: dict[str, Any],
    ) -> bool:
        """요청에 대한 응답 전송

        ackId가 없는 요청도 응답은 받는다 (클라이언트가 event로 구분).
        """
        message = {"type": SignalingMessageType.ACK.value, "ackId": data.get("ackId"), "event": event}
        message.update(payload)
        return await self.send(connection_id, message)

    async def error(self, connection_id: str, code: SignalingErrorCode, message: str) -> bool:
        error = ErrorMessage(code=code.value, message=message)
        return await self.send(connection_id, error.model_dump())

    # ===== 수명주기 =====

    async def shutdown(self) -> None:
        """서버 종료 - 모든 클라이언트에 알리고 예약 작업 취소"""
        notified = await self.connections.broadcast_all(
            {
                "type": SignalingMessageType.SERVER_SHUTDOWN.value,
                "message": "Server is shutting down",
                "timestamp": self.now_ms(),
            }
        )
        logger.info(f"Shutdown notice sent to {notified} connections")
        self.scheduler.cancel_all()
        await self.connections.close_all()

    def _on_room_deleted(self, room_id: str, reason: str) -> None:
        metrics = get_signaling_metrics()
        if metrics:
            metrics.record_room_deleted(reason)
