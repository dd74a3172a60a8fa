"""ConnectionTasks 단위 테스트"""

import asyncio

import pytest

from duochat.services.connection_tasks import ConnectionTasks

MOBILE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"


@pytest.mark.asyncio
async def test_optimized_message_shape(hub):
    tasks = ConnectionTasks(hub, "conn-a", is_mobile=False)

    message = tasks.build_optimized_message().model_dump(by_alias=True)

    assert message["type"] == "connection-optimized"
    assert message["timeouts"] == {"iceConnection": 30000, "iceGathering": 10000, "peerConnection": 45000}
    assert message["constraints"]["audio"] is True
    assert message["constraints"]["video"]["frameRate"] == {"ideal": 24}
    assert len(message["iceServers"]) == 8


@pytest.mark.asyncio
async def test_mobile_gets_extra_ice_servers(hub):
    desktop = ConnectionTasks(hub, "conn-a", is_mobile=False).build_optimized_message()
    mobile = ConnectionTasks(hub, "conn-b", is_mobile=True).build_optimized_message()

    assert len(mobile.ice_servers) == len(desktop.ice_servers) + 2


@pytest.mark.asyncio
async def test_optimized_sent_after_delay(hub, connect, sent):
    """접속 후 지연 뒤 한 번만 전송, 데스크톱은 keep-alive 없음"""
    ws = await connect("conn-a")
    tasks = ConnectionTasks(hub, "conn-a", is_mobile=False, keep_alive_interval=0.01, optimized_delay=0.01)

    tasks.start()
    await asyncio.sleep(0.1)
    await tasks.stop()

    assert len(sent(ws, "connection-optimized")) == 1
    assert sent(ws, "mobile-keep-alive") == []


@pytest.mark.asyncio
async def test_mobile_keep_alive_repeats(hub, connect, sent):
    ws = await connect("conn-m", user_agent=MOBILE_UA)
    tasks = ConnectionTasks(hub, "conn-m", is_mobile=True, keep_alive_interval=0.01, optimized_delay=10.0)

    tasks.start()
    await asyncio.sleep(0.1)
    await tasks.stop()

    keep_alives = sent(ws, "mobile-keep-alive")
    assert len(keep_alives) >= 2
    assert keep_alives[0]["connectionId"] == "conn-m"
    assert keep_alives[0]["timestamp"] == hub.now_ms()
    assert sent(ws, "connection-optimized") == []


@pytest.mark.asyncio
async def test_stop_cancels_pending_work(hub, connect, sent):
    """종료된 연결에는 아무것도 보내지 않음"""
    ws = await connect("conn-m", user_agent=MOBILE_UA)
    tasks = ConnectionTasks(hub, "conn-m", is_mobile=True, keep_alive_interval=0.05, optimized_delay=0.05)

    tasks.start()
    assert tasks.running is True
    await tasks.stop()
    await asyncio.sleep(0.1)

    assert tasks.running is False
    assert sent(ws) == []


@pytest.mark.asyncio
async def test_keep_alive_stops_when_socket_is_gone(hub):
    """소켓이 없으면 keep-alive 루프 스스로 종료"""
    tasks = ConnectionTasks(hub, "missing", is_mobile=True, keep_alive_interval=0.01, optimized_delay=10.0)

    tasks.start()
    await asyncio.sleep(0.1)

    # keep-alive만 끝나고 지연 전송은 아직 대기 중
    assert [task.done() for task in tasks._tasks] == [False, True]
    await tasks.stop()
