"""연결 레지스트리 - 연결별 생존/품질 진단 정보

방 멤버십과 독립적인 진단 전용 컴포넌트. 여기서의 실패가 세션 처리를 막아서는 안 된다.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from duochat.core.signaling_config import (
    FAIR_LATENCY_MS,
    MOBILE_USER_AGENT_PATTERN,
    POOR_LATENCY_MS,
)
from duochat.schemas.signaling import ConnectionQuality, SessionState

logger = logging.getLogger(__name__)


def is_mobile_user_agent(user_agent: str | None) -> bool:
    """User-Agent로 모바일 기기 판별"""
    if not user_agent:
        return False
    return MOBILE_USER_AGENT_PATTERN.search(user_agent) is not None


def classify_quality(latency_ms: float) -> ConnectionQuality:
    """왕복 지연으로 품질 등급 산정 (>1000ms poor, >500ms fair)"""
    if latency_ms > POOR_LATENCY_MS:
        return ConnectionQuality.POOR
    if latency_ms > FAIR_LATENCY_MS:
        return ConnectionQuality.FAIR
    return ConnectionQuality.GOOD


@dataclass
class ConnectionRecord:
    """연결 하나의 진단 정보"""

    connection_id: str
    connected_at: float
    last_seen: float
    ip: str | None = None
    user_agent: str | None = None
    is_mobile: bool = False
    latency_ms: float | None = None
    quality: ConnectionQuality = ConnectionQuality.GOOD
    quality_details: dict[str, Any] | None = None
    room_id: str | None = None
    user_id: str | None = None
    state: SessionState = SessionState.DISCONNECTED
    disconnection_count: int = 0


class ConnectionRegistry:
    """connection_id 기준 연결 정보 관리"""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        stale_after_seconds: float = 300.0,
    ):
        self._clock = clock
        self.stale_after_seconds = stale_after_seconds
        self._records: dict[str, ConnectionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._records

    def get(self, connection_id: str) -> ConnectionRecord | None:
        return self._records.get(connection_id)

    def register(
        self,
        connection_id: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> ConnectionRecord:
        """새 연결 등록"""
        now = self._clock()
        record = ConnectionRecord(
            connection_id=connection_id,
            connected_at=now,
            last_seen=now,
            ip=ip,
            user_agent=user_agent,
            is_mobile=is_mobile_user_agent(user_agent),
        )
        self._records[connection_id] = record
        if record.is_mobile:
            logger.info(f"Mobile device connected: {connection_id}")
        return record

    def associate(
        self,
        connection_id: str,
        room_id: str,
        user_id: str,
        reconnect: bool = False,
    ) -> ConnectionRecord | None:
        """연결에 방/사용자 연결 정보 기록"""
        record = self._records.get(connection_id)
        if record is None:
            return None
        record.room_id = room_id
        record.user_id = user_id
        if reconnect:
            record.disconnection_count += 1
        return record

    def set_state(self, connection_id: str, state: SessionState) -> None:
        record = self._records.get(connection_id)
        if record is not None:
            record.state = state

    def heartbeat(self, connection_id: str, client_timestamp_ms: float | None = None) -> ConnectionRecord | None:
        """ping 수신 처리 - 생존 시각 갱신 및 품질 산정

        Args:
            connection_id: 연결 ID
            client_timestamp_ms: 클라이언트가 보낸 시각 (epoch ms). 없으면 생존 시각만 갱신
        """
        record = self._records.get(connection_id)
        if record is None:
            return None

        now = self._clock()
        record.last_seen = now
        if client_timestamp_ms is not None:
            latency = max(now * 1000 - float(client_timestamp_ms), 0.0)
            record.latency_ms = latency
            record.quality = classify_quality(latency)
        return record

    def report_quality(
        self,
        connection_id: str,
        quality: ConnectionQuality,
        details: dict[str, Any] | None = None,
    ) -> ConnectionRecord | None:
        """클라이언트가 직접 보고한 품질 기록"""
        record = self._records.get(connection_id)
        if record is None:
            return None
        record.quality = quality
        record.quality_details = details
        record.last_seen = self._clock()
        logger.info(f"Connection quality report from {connection_id}: {quality.value}")
        return record

    def unregister(self, connection_id: str) -> ConnectionRecord | None:
        """연결 종료 시 제거"""
        record = self._records.pop(connection_id, None)
        if record is not None:
            record.state = SessionState.DISCONNECTED
        return record

    def sweep(self, now: float | None = None) -> list[str]:
        """오래 응답이 없는 연결 정보 정리"""
        now = self._clock() if now is None else now
        stale = [
            connection_id
            for connection_id, record in self._records.items()
            if now - record.last_seen > self.stale_after_seconds
        ]
        for connection_id in stale:
            logger.info(f"Cleaning up stale connection: {connection_id}")
            del self._records[connection_id]
        return stale

    @property
    def mobile_count(self) -> int:
        return sum(1 for record in self._records.values() if record.is_mobile)

    def quality_snapshot(self) -> dict[str, str]:
        return {connection_id: record.quality.value for connection_id, record in self._records.items()}

    def stats(self) -> dict[str, Any]:
        """연결 통계 요약"""
        return {
            "total_connections": len(self._records),
            "mobile_connections": self.mobile_count,
            "connection_quality": self.quality_snapshot(),
        }
