"""ConnectionManager 단위 테스트"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from duochat.services.signaling_service import ConnectionManager


def _websocket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.mark.asyncio
async def test_connect_accepts_and_registers(manager):
    websocket = _websocket()

    await manager.connect("conn-a", websocket)

    websocket.accept.assert_awaited_once()
    assert "conn-a" in manager
    assert manager.connection_count == 1


@pytest.mark.asyncio
async def test_send_to_unknown_connection_returns_false(manager):
    assert await manager.send("missing", {"type": "pong"}) is False


@pytest.mark.asyncio
async def test_send_failure_drops_socket(manager):
    """전송 실패한 소켓은 맵에서 제거"""
    broken = _websocket()
    broken.send_json.side_effect = RuntimeError("closed")
    await manager.connect("conn-a", broken)

    assert await manager.send("conn-a", {"type": "pong"}) is False
    assert "conn-a" not in manager


@pytest.mark.asyncio
async def test_send_many_counts_deliveries(manager):
    healthy = _websocket()
    broken = _websocket()
    broken.send_json.side_effect = RuntimeError("closed")
    await manager.connect("conn-a", healthy)
    await manager.connect("conn-b", broken)

    delivered = await manager.send_many(["conn-a", "conn-b", "conn-c"], {"type": "user-left"})

    assert delivered == 1
    healthy.send_json.assert_awaited_once_with({"type": "user-left"})


@pytest.mark.asyncio
async def test_broadcast_all_and_close_all(manager):
    first = _websocket()
    second = _websocket()
    await manager.connect("conn-a", first)
    await manager.connect("conn-b", second)

    assert await manager.broadcast_all({"type": "server-shutdown"}) == 2
    await manager.close_all()

    first.close.assert_awaited_once()
    second.close.assert_awaited_once()
    assert manager.connection_count == 0


def test_disconnect_is_idempotent(manager):
    manager.disconnect("missing")
    assert manager.connection_count == 0
