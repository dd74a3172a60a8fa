"""WebSocket 시그널링 엔드포인트"""

import json
import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from duochat.api.dependencies import HubDep, SettingsDep
from duochat.handlers.websocket_message_handlers import dispatch_message, handle_disconnect
from duochat.schemas.signaling import SignalingErrorCode
from duochat.services.connection_registry import is_mobile_user_agent
from duochat.services.connection_tasks import ConnectionTasks
from duochat.services.signaling_hub import SignalingHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Signaling"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, hub: HubDep, settings: SettingsDep):
    """WebSocket 시그널링 엔드포인트

    연결마다 서버가 connection_id를 발급한다. 방/사용자 정보는 각 메시지가 싣고 온다.
    접속 1초 뒤 connection-optimized를 보내고, 모바일이면 keep-alive를 주기적으로 보낸다.
    """
    connection_id = uuid4().hex
    ip = websocket.client.host if websocket.client else None
    user_agent = websocket.headers.get("user-agent")

    await hub.connections.connect(connection_id, websocket)
    try:
        hub.registry.register(connection_id, ip=ip, user_agent=user_agent)
    except Exception as e:
        logger.warning(f"Connection registry register failed: {e}")

    tasks = ConnectionTasks(
        hub,
        connection_id,
        is_mobile=is_mobile_user_agent(user_agent),
        keep_alive_interval=settings.mobile_keep_alive_interval_seconds,
        optimized_delay=settings.connection_optimized_delay_seconds,
    )
    tasks.start()

    reason = "transport close"
    try:
        await handle_websocket_messages(websocket, hub, connection_id)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected: connection={connection_id}, code={e.code}")
        reason = "client disconnect" if e.code in (1000, 1001) else "transport close"
    except Exception as e:
        logger.error(f"WebSocket error on {connection_id}: {e}")
        reason = "transport error"
    finally:
        await tasks.stop()
        await handle_disconnect(hub, connection_id, reason)


async def handle_websocket_messages(
    websocket: WebSocket,
    hub: SignalingHub,
    connection_id: str,
) -> None:
    """WebSocket 메시지 처리 - Strategy Pattern 사용

    잘못된 메시지에는 error를 보내고 연결은 유지한다.
    """
    while True:
        raw = await websocket.receive_text()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await hub.error(connection_id, SignalingErrorCode.INVALID_MESSAGE, "Message must be valid JSON")
            continue

        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            await hub.error(connection_id, SignalingErrorCode.INVALID_MESSAGE, "Message must be an object with a type")
            continue

        await dispatch_message(data["type"], hub, connection_id, data)
