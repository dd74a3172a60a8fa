"""시그널링 메시지 관련 스키마"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalingMessageType(str, Enum):
    """시그널링 메시지 타입"""
    # Client -> Server
    JOIN_ROOM = "join-room"
    REJOIN_ROOM = "rejoin-room"
    LEAVE_ROOM = "leave-room"
    USER_LEAVING = "user-leaving"
    END_CONVERSATION = "end-conversation"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    ICE_RESTART_REQUEST = "ice-restart-request"
    CHAT_MESSAGE = "chat-message"
    REMOTE_AUDIO_TOGGLE = "remote-audio-toggle"
    CHECK_ROOM = "check-room"
    PING = "ping"
    CONNECTION_QUALITY_REPORT = "connection-quality-report"
    CONNECTION_HEALTH_CHECK = "connection-health-check"
    # Server -> Client
    ACK = "ack"
    PONG = "pong"
    USER_CONNECTED = "user-connected"
    USER_RECONNECTED = "user-reconnected"
    USER_DISCONNECTED = "user-disconnected"
    MOBILE_USER_DISCONNECTED = "mobile-user-disconnected"
    USER_LEFT = "user-left"
    USER_LEFT_VOLUNTARILY = "user-left-voluntarily"
    EXISTING_USERS = "existing-users"
    CONVERSATION_ENDED = "conversation-ended"
    REDIRECT_TO_LOUNGE = "redirect-to-lounge"
    ROOM_NOT_FOUND = "room-not-found"
    MESSAGE_DELIVERED = "message-delivered"
    ICE_RESTART_REQUIRED = "ice-restart-required"
    PARTNER_CONNECTION_QUALITY = "partner-connection-quality"
    CONNECTION_OPTIMIZATION = "connection-optimization"
    CONNECTION_OPTIMIZED = "connection-optimized"
    MOBILE_KEEP_ALIVE = "mobile-keep-alive"
    CONNECTION_HEALTH_RESPONSE = "connection-health-response"
    SERVER_SHUTDOWN = "server-shutdown"
    ERROR = "error"


# 상대에게 그대로 중계하는 협상 메시지
RELAYED_MESSAGE_TYPES = (
    SignalingMessageType.OFFER,
    SignalingMessageType.ANSWER,
    SignalingMessageType.ICE_CANDIDATE,
)


class ConnectionQuality(str, Enum):
    """연결 품질 등급"""
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SessionState(str, Enum):
    """연결별 세션 상태"""
    DISCONNECTED = "disconnected"
    JOINING = "joining"
    JOINED = "joined"
    RECONNECTING = "reconnecting"
    LEAVING = "leaving"
    ENDED = "ended"


class SignalingErrorCode(str, Enum):
    """채널 에러 코드"""
    INVALID_MESSAGE = "INVALID_MESSAGE"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    INVALID_ROOM_ID = "INVALID_ROOM_ID"
    INVALID_USER_ID = "INVALID_USER_ID"
    ROOM_FULL = "ROOM_FULL"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ===== WebSocket 시그널링 메시지 스키마 =====


class ErrorMessage(BaseModel):
    """에러 메시지 (Server -> Client)"""
    type: str = SignalingMessageType.ERROR.value
    code: str
    message: str


class ConnectionOptimizationMessage(BaseModel):
    """입장 직후 전송하는 연결 최적화 설정"""
    type: str = SignalingMessageType.CONNECTION_OPTIMIZATION.value
    ping_interval: int = Field(serialization_alias="pingInterval")
    ice_servers: list[dict[str, str]] = Field(serialization_alias="iceServers")
    timeout: int

    class Config:
        populate_by_name = True


class ConnectionTimeouts(BaseModel):
    """클라이언트 측 WebRTC 타임아웃 (ms)"""
    ice_connection: int = Field(serialization_alias="iceConnection")
    ice_gathering: int = Field(serialization_alias="iceGathering")
    peer_connection: int = Field(serialization_alias="peerConnection")

    class Config:
        populate_by_name = True


class ConnectionOptimizedMessage(BaseModel):
    """접속 직후 한 번 전송하는 연결 설정 (입장 여부와 무관)"""
    type: str = SignalingMessageType.CONNECTION_OPTIMIZED.value
    ice_servers: list[dict[str, str]] = Field(serialization_alias="iceServers")
    timeouts: ConnectionTimeouts
    constraints: dict[str, Any]

    class Config:
        populate_by_name = True
