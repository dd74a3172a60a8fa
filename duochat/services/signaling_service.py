"""WebSocket 시그널링 서비스 - 연결별 소켓 관리 및 전송"""

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """connection_id 기준 WebSocket 관리

    전송은 fire-and-forget이다. 전송에 실패한 소켓은 맵에서 제거되고
    해당 연결의 정리는 수신 루프의 disconnect 처리에 맡긴다.
    """

    def __init__(self):
        # connection_id -> WebSocket
        self._connections: dict[str, WebSocket] = {}

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        """WebSocket 연결 수락 및 등록"""
        await websocket.accept()
        self._connections[connection_id] = websocket
        logger.info(f"User connected: {connection_id}")

    def disconnect(self, connection_id: str) -> None:
        """WebSocket 연결 해제"""
        if self._connections.pop(connection_id, None) is not None:
            logger.info(f"User disconnected: {connection_id}")

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """특정 연결에 메시지 전송

        Returns:
            전송 성공 여부 (연결이 없거나 실패하면 False)
        """
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return False

        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send {message.get('type')} to {connection_id}: {e}")
            self._connections.pop(connection_id, None)
            return False

    async def send_many(self, connection_ids: list[str], message: dict[str, Any]) -> int:
        """여러 연결에 같은 메시지 전송

        Returns:
            전송에 성공한 연결 수
        """
        delivered = 0
        for connection_id in connection_ids:
            if await self.send(connection_id, message):
                delivered += 1
        return delivered

    async def broadcast_all(self, message: dict[str, Any]) -> int:
        """연결된 모든 클라이언트에 전송 (서버 종료 알림 등)"""
        return await self.send_many(list(self._connections), message)

    async def close_all(self, code: int = 1001, reason: str = "Server shutdown") -> None:
        """모든 연결 종료"""
        for connection_id, websocket in list(self._connections.items()):
            try:
                await websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug(f"Close failed for {connection_id}: {e}")
        self._connections.clear()
