"""WebSocket 메시지 핸들러 - Strategy Pattern 구현

핸들러는 상태를 갖지 않는다. 모든 메시지는 자신의 roomId/userId를 싣고 오며
공유 상태는 인자로 받은 SignalingHub에만 있다.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

from duochat.core.signaling_config import (
    DESKTOP_PING_INTERVAL_MS,
    MOBILE_PING_INTERVAL_MS,
    PEER_CONNECTION_TIMEOUT_MS,
    get_ice_servers,
)
from duochat.core.telemetry import get_signaling_metrics, get_tracer, timed_operation
from duochat.schemas.signaling import (
    RELAYED_MESSAGE_TYPES,
    ConnectionOptimizationMessage,
    ConnectionQuality,
    SessionState,
    SignalingErrorCode,
    SignalingMessageType,
)
from duochat.services.room_store import RoomFullError
from duochat.services.signaling_hub import SignalingHub
from duochat.utils.room_id import is_valid_room_id, is_valid_user_id

logger = logging.getLogger(__name__)

CONVERSATION_ENDED_MESSAGE = "Conversation ended by partner"
LEFT_VOLUNTARILY_MESSAGE = "Partner left the conversation"


class MessageHandler(Protocol):
    """메시지 핸들러 프로토콜"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        """메시지 처리

        Args:
            hub: 공유 시그널링 상태
            connection_id: 메시지를 보낸 연결 ID
            data: 메시지 데이터 (type 포함)
        """
        ...


# ===== 공통 도우미 =====


def _track(action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """연결 레지스트리 호출 - 진단 실패가 프로토콜을 막지 않도록 경고만 남긴다"""
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Connection registry {action} failed: {e}")
        return None


def _authorized_sender(hub: SignalingHub, connection_id: str, data: dict) -> tuple[str, str] | None:
    """이 연결이 roomId의 멤버로서 보낸 메시지인지 확인

    userId가 없으면 연결에 기록된 사용자로 대체한다.

    Returns:
        (room_id, user_id), 방이 없거나 멤버가 아니면 None
    """
    room_id = data.get("roomId")
    if not is_valid_room_id(room_id):
        return None

    user_id = data.get("userId")
    if not is_valid_user_id(user_id):
        record = _track("lookup", hub.registry.get, connection_id)
        user_id = record.user_id if record else None
    if user_id is None:
        return None

    room = hub.store.get(room_id)
    if room is None or room.members.get(user_id) != connection_id:
        return None
    return room_id, user_id


def _still_member(hub: SignalingHub, room_id: str, user_id: str, connection_id: str) -> bool:
    room = hub.store.get(room_id)
    return room is not None and room.members.get(user_id) == connection_id


async def _notify_evicted(hub: SignalingHub, room_ids: list[str], user_id: str) -> None:
    """다른 방으로 옮겨 간 사용자를 이전 방 멤버에게 알림"""
    for room_id in room_ids:
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.USER_LEFT.value,
                "userId": user_id,
                "timestamp": hub.now_ms(),
            },
        )


async def _notify_partner_quality(hub: SignalingHub, connection_id: str, extra: dict[str, Any]) -> None:
    """품질이 나쁘면 같은 방의 상대에게 알림

    방과 사용자는 서버가 기록한 이 연결의 멤버십으로 정한다. 멤버가 아니면 보내지 않는다.
    """
    membership = hub.store.membership_of(connection_id)
    if membership is None:
        return
    room_id, user_id = membership

    message = {
        "type": SignalingMessageType.PARTNER_CONNECTION_QUALITY.value,
        "userId": user_id,
        "quality": ConnectionQuality.POOR.value,
        "timestamp": hub.now_ms(),
    }
    message.update(extra)
    await hub.send_to_members(room_id, message, exclude_user_id=user_id)


# ===== 세션/프레즌스 =====


class JoinRoomHandler:
    """join-room 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        event = SignalingMessageType.JOIN_ROOM.value
        room_id = data.get("roomId")
        user_id = data.get("userId")

        if not is_valid_room_id(room_id):
            await hub.ack(connection_id, data, event, {"success": False, "error": SignalingErrorCode.INVALID_ROOM_ID.value})
            return
        if not is_valid_user_id(user_id):
            await hub.ack(connection_id, data, event, {"success": False, "error": SignalingErrorCode.INVALID_USER_ID.value})
            return

        _track("set_state", hub.registry.set_state, connection_id, SessionState.JOINING)
        try:
            result = hub.store.join(room_id, user_id, connection_id)
        except RoomFullError as e:
            logger.info(f"Join rejected for {user_id}: {e}")
            _track("set_state", hub.registry.set_state, connection_id, SessionState.DISCONNECTED)
            await hub.ack(
                connection_id,
                data,
                event,
                {"success": False, "error": SignalingErrorCode.ROOM_FULL.value, "message": str(e)},
            )
            return

        record = _track("associate", hub.registry.associate, connection_id, room_id, user_id)
        _track("set_state", hub.registry.set_state, connection_id, SessionState.JOINED)

        metrics = get_signaling_metrics()
        if metrics and result.created:
            metrics.record_room_created()

        await _notify_evicted(hub, result.evicted_from, user_id)

        await hub.ack(
            connection_id,
            data,
            event,
            {
                "success": True,
                "otherMembers": result.other_members,
                "roomExists": True,
                "connectionId": connection_id,
                "serverTime": hub.now_ms(),
            },
        )

        is_mobile = bool(record and record.is_mobile)
        optimization = ConnectionOptimizationMessage(
            ping_interval=MOBILE_PING_INTERVAL_MS if is_mobile else DESKTOP_PING_INTERVAL_MS,
            ice_servers=get_ice_servers(is_mobile),
            timeout=PEER_CONNECTION_TIMEOUT_MS,
        )
        await hub.send(connection_id, optimization.model_dump(by_alias=True))

        if result.other_members:
            self._schedule_introductions(hub, room_id, user_id, connection_id)

    def _schedule_introductions(
        self,
        hub: SignalingHub,
        room_id: str,
        user_id: str,
        connection_id: str,
    ) -> None:
        """기존 멤버와 새 멤버에게 서로를 알림 (유실 대비 재전송)

        대상은 전송 시점에 다시 해석한다. 그 사이 새 멤버가 나갔으면 보내지 않는다.
        """

        async def send_user_connected() -> None:
            if not _still_member(hub, room_id, user_id, connection_id):
                return
            await hub.send_to_members(
                room_id,
                {
                    "type": SignalingMessageType.USER_CONNECTED.value,
                    "userId": user_id,
                    "connectionId": connection_id,
                    "timestamp": hub.now_ms(),
                },
                exclude_user_id=user_id,
            )

        async def send_existing_users() -> None:
            if not _still_member(hub, room_id, user_id, connection_id):
                return
            users = hub.store.get(room_id).other_members(user_id)
            if not users:
                return
            await hub.send(
                connection_id,
                {
                    "type": SignalingMessageType.EXISTING_USERS.value,
                    "users": users,
                    "roomId": room_id,
                    "timestamp": hub.now_ms(),
                },
            )

        hub.user_connected_policy.schedule(hub.scheduler, send_user_connected)
        hub.existing_users_policy.schedule(hub.scheduler, send_existing_users)


class RejoinRoomHandler:
    """rejoin-room 메시지 핸들러 (재연결 후 멱등 재입장)"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        room_id = data.get("roomId")
        user_id = data.get("userId")

        if not is_valid_room_id(room_id) or not is_valid_user_id(user_id):
            await hub.error(connection_id, SignalingErrorCode.INVALID_MESSAGE, "rejoin-room requires roomId and userId")
            return

        _track("set_state", hub.registry.set_state, connection_id, SessionState.RECONNECTING)
        result = hub.store.rejoin(room_id, user_id, connection_id)
        if result is None:
            logger.info(f"Rejoin failed, room {room_id} not found for user {user_id}")
            _track("set_state", hub.registry.set_state, connection_id, SessionState.DISCONNECTED)
            await hub.send(
                connection_id,
                {"type": SignalingMessageType.ROOM_NOT_FOUND.value, "roomId": room_id},
            )
            return

        _track("associate", hub.registry.associate, connection_id, room_id, user_id, reconnect=True)
        _track("set_state", hub.registry.set_state, connection_id, SessionState.JOINED)
        await _notify_evicted(hub, result.evicted_from, user_id)

        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.USER_RECONNECTED.value,
                "userId": user_id,
                "connectionId": connection_id,
                "timestamp": hub.now_ms(),
            },
            exclude_user_id=user_id,
        )


class LeaveRoomHandler:
    """leave-room 메시지 핸들러 (자발적 퇴장)"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        room_id = data.get("roomId")
        user_id = data.get("userId")
        if not is_valid_room_id(room_id) or not is_valid_user_id(user_id):
            logger.debug(f"Ignoring leave-room with invalid ids from {connection_id}")
            return

        _track("set_state", hub.registry.set_state, connection_id, SessionState.LEAVING)
        result = hub.store.leave(room_id, user_id, reason="left", connection_id=connection_id)
        if result.removed:
            await hub.send_to_members(
                room_id,
                {
                    "type": SignalingMessageType.USER_LEFT_VOLUNTARILY.value,
                    "userId": user_id,
                    "message": LEFT_VOLUNTARILY_MESSAGE,
                    "timestamp": hub.now_ms(),
                },
            )

        await hub.send(connection_id, {"type": SignalingMessageType.REDIRECT_TO_LOUNGE.value})


class UserLeavingHandler:
    """user-leaving 메시지 핸들러 (페이지 이탈 직전 best-effort 알림)

    멤버십은 건드리지 않는다. 실제 정리는 이어지는 disconnect가 한다.
    """

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        sender = _authorized_sender(hub, connection_id, data)
        if sender is None:
            return
        room_id, user_id = sender
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.USER_LEFT.value,
                "userId": user_id,
                "timestamp": hub.now_ms(),
            },
            exclude_user_id=user_id,
        )


class EndConversationHandler:
    """end-conversation 메시지 핸들러 - 방을 즉시 삭제"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        room_id = data.get("roomId")
        user_id = data.get("userId")
        if not is_valid_room_id(room_id):
            logger.debug(f"Ignoring end-conversation with invalid room id from {connection_id}")
            return

        room = hub.store.end_conversation(room_id, user_id)
        _track("set_state", hub.registry.set_state, connection_id, SessionState.ENDED)

        # 방은 이미 삭제되었으므로 삭제 직전 멤버 스냅샷으로 전송
        targets = list(room.members.values()) if room else []
        if connection_id not in targets:
            targets.append(connection_id)

        await hub.connections.send_many(
            targets,
            {
                "type": SignalingMessageType.CONVERSATION_ENDED.value,
                "endedBy": user_id,
                "message": CONVERSATION_ENDED_MESSAGE,
                "timestamp": hub.now_ms(),
            },
        )
        await hub.connections.send_many(targets, {"type": SignalingMessageType.REDIRECT_TO_LOUNGE.value})


# ===== 시그널링 중계 =====


class RelayHandler:
    """OFFER/ANSWER/ICE_CANDIDATE 메시지 핸들러 (통합)

    봉투 전체를 그대로 같은 방의 다른 멤버에게 전달한다. 보낸 사람에게 되돌려 보내지 않는다.
    """

    def __init__(self, message_type: str):
        """
        Args:
            message_type: "offer", "answer" 또는 "ice-candidate"
        """
        self.message_type = message_type

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        sender = _authorized_sender(hub, connection_id, data)
        if sender is None:
            logger.debug(f"Dropping {self.message_type} from {connection_id}: not a member of {data.get('roomId')}")
            return
        room_id, user_id = sender

        message = {key: value for key, value in data.items() if key != "ackId"}
        message["type"] = self.message_type
        message["userId"] = user_id

        delivered = await hub.send_to_members(room_id, message, exclude_user_id=user_id)
        logger.debug(f"Relayed {self.message_type} from {user_id} in room {room_id} to {delivered} peers")

        metrics = get_signaling_metrics()
        if metrics:
            metrics.record_relay(self.message_type)


class ChatMessageHandler:
    """CHAT_MESSAGE 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        content = data.get("message", "")

        # 빈 메시지 무시
        if not isinstance(content, str) or not content.strip():
            return

        sender = _authorized_sender(hub, connection_id, data)
        if sender is None:
            return
        room_id, user_id = sender

        timestamp = data.get("timestamp") or hub.now_ms()
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.CHAT_MESSAGE.value,
                "userId": user_id,
                "message": content,
                "messageId": data.get("messageId"),
                "timestamp": timestamp,
                "detectedLang": data.get("detectedLang"),
                "delivered": True,
            },
            exclude_user_id=user_id,
        )
        await hub.send(
            connection_id,
            {
                "type": SignalingMessageType.MESSAGE_DELIVERED.value,
                "messageId": data.get("messageId"),
                "timestamp": timestamp,
            },
        )

        metrics = get_signaling_metrics()
        if metrics:
            metrics.record_relay(SignalingMessageType.CHAT_MESSAGE.value)


class RemoteAudioToggleHandler:
    """remote-audio-toggle 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        sender = _authorized_sender(hub, connection_id, data)
        if sender is None:
            return
        room_id, user_id = sender
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.REMOTE_AUDIO_TOGGLE.value,
                "userId": user_id,
                "muted": bool(data.get("muted", False)),
                "timestamp": hub.now_ms(),
            },
            exclude_user_id=user_id,
        )


class IceRestartHandler:
    """ice-restart-request 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        sender = _authorized_sender(hub, connection_id, data)
        if sender is None:
            return
        room_id, user_id = sender
        logger.info(f"ICE restart requested by {user_id} in room {room_id}")
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.ICE_RESTART_REQUIRED.value,
                "userId": user_id,
                "reason": data.get("reason"),
                "timestamp": hub.now_ms(),
            },
            exclude_user_id=user_id,
        )


# ===== 조회/진단 =====


class CheckRoomHandler:
    """check-room 메시지 핸들러 - 이동 전 방 존재 확인"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        room_id = data.get("roomId")
        exists = is_valid_room_id(room_id) and hub.store.room_exists(room_id)
        await hub.ack(
            connection_id,
            data,
            SignalingMessageType.CHECK_ROOM.value,
            {"exists": exists, "roomId": room_id},
        )


class PingHandler:
    """ping 메시지 핸들러 - 생존 확인 및 지연 측정"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        client_time = data.get("clientTime", data.get("timestamp"))
        if isinstance(client_time, bool) or not isinstance(client_time, (int, float)):
            client_time = None

        record = _track("heartbeat", hub.registry.heartbeat, connection_id, client_time)

        pong = {key: value for key, value in data.items() if key not in ("type", "ackId")}
        pong.update(
            {
                "type": SignalingMessageType.PONG.value,
                "serverTime": hub.now_ms(),
                "connectionId": connection_id,
            }
        )
        await hub.send(connection_id, pong)

        if record is not None and record.quality is ConnectionQuality.POOR:
            await _notify_partner_quality(hub, connection_id, {"latency": record.latency_ms})


class ConnectionQualityReportHandler:
    """connection-quality-report 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        try:
            quality = ConnectionQuality(data.get("quality"))
        except ValueError:
            await hub.error(connection_id, SignalingErrorCode.INVALID_MESSAGE, "quality must be good, fair or poor")
            return

        details = data.get("details")
        record = _track(
            "report_quality",
            hub.registry.report_quality,
            connection_id,
            quality,
            details if isinstance(details, dict) else None,
        )

        if quality is ConnectionQuality.POOR:
            await _notify_partner_quality(hub, connection_id, {"suggestion": data.get("suggestion")})


class ConnectionHealthCheckHandler:
    """connection-health-check 메시지 핸들러"""

    async def handle(self, hub: SignalingHub, connection_id: str, data: dict) -> None:
        _track("heartbeat", hub.registry.heartbeat, connection_id)
        await hub.send(
            connection_id,
            {
                "type": SignalingMessageType.CONNECTION_HEALTH_RESPONSE.value,
                "timestamp": hub.now_ms(),
                "connectionId": connection_id,
                "serverLoad": len(hub.store),
                "activeConnections": len(hub.registry),
            },
        )


# 핸들러 레지스트리
HANDLERS: dict[str, MessageHandler] = {
    SignalingMessageType.JOIN_ROOM.value: JoinRoomHandler(),
    SignalingMessageType.REJOIN_ROOM.value: RejoinRoomHandler(),
    SignalingMessageType.LEAVE_ROOM.value: LeaveRoomHandler(),
    SignalingMessageType.USER_LEAVING.value: UserLeavingHandler(),
    SignalingMessageType.END_CONVERSATION.value: EndConversationHandler(),
    **{msg_type.value: RelayHandler(msg_type.value) for msg_type in RELAYED_MESSAGE_TYPES},
    SignalingMessageType.ICE_RESTART_REQUEST.value: IceRestartHandler(),
    SignalingMessageType.CHAT_MESSAGE.value: ChatMessageHandler(),
    SignalingMessageType.REMOTE_AUDIO_TOGGLE.value: RemoteAudioToggleHandler(),
    SignalingMessageType.CHECK_ROOM.value: CheckRoomHandler(),
    SignalingMessageType.PING.value: PingHandler(),
    SignalingMessageType.CONNECTION_QUALITY_REPORT.value: ConnectionQualityReportHandler(),
    SignalingMessageType.CONNECTION_HEALTH_CHECK.value: ConnectionHealthCheckHandler(),
}


async def dispatch_message(
    msg_type: str,
    hub: SignalingHub,
    connection_id: str,
    data: dict,
) -> bool:
    """메시지 타입에 따라 적절한 핸들러로 디스패치

    핸들러에서 발생한 예외는 로그로 남기고 INTERNAL_ERROR를 보낸다. 연결은 유지된다.

    Returns:
        True if handler was found and executed, False for unknown message types
    """
    handler = HANDLERS.get(msg_type)
    if handler is None:
        logger.warning(f"Unknown message type: {msg_type}")
        await hub.error(connection_id, SignalingErrorCode.UNKNOWN_MESSAGE_TYPE, f"Unknown message type: {msg_type}")
        return False

    with get_tracer().start_as_current_span(f"signaling.{msg_type}"), timed_operation() as timer:
        try:
            await handler.handle(hub, connection_id, data)
        except Exception:
            logger.exception(f"Handler for {msg_type} failed on connection {connection_id}")
            await hub.error(connection_id, SignalingErrorCode.INTERNAL_ERROR, f"Failed to process {msg_type}")

    metrics = get_signaling_metrics()
    if metrics:
        metrics.handler_duration.record(timer.duration, {"type": msg_type})
    return True


async def handle_disconnect(hub: SignalingHub, connection_id: str, reason: str) -> None:
    """전송 계층 종료 처리

    이 연결이 아직 멤버십을 갖고 있을 때만 퇴장시킨다.
    이미 새 연결로 재입장한 사용자는 건드리지 않는다. 방이 비면 유예 후 삭제된다.
    """
    record = _track("unregister", hub.registry.unregister, connection_id)
    hub.connections.disconnect(connection_id)

    membership = hub.store.membership_of(connection_id)
    if membership is None:
        return
    room_id, user_id = membership

    result = hub.store.leave(room_id, user_id, reason="disconnected", connection_id=connection_id)
    if not result.removed:
        return

    timestamp = hub.now_ms()
    if record is not None and record.is_mobile:
        await hub.send_to_members(
            room_id,
            {
                "type": SignalingMessageType.MOBILE_USER_DISCONNECTED.value,
                "userId": user_id,
                "reason": reason,
                "timestamp": timestamp,
            },
        )
    await hub.send_to_members(
        room_id,
        {
            "type": SignalingMessageType.USER_DISCONNECTED.value,
            "userId": user_id,
            "reason": reason,
            "timestamp": timestamp,
        },
    )
