"""pytest 설정 및 공유 fixture

테스트 인프라:
- 고정 시계, 수동 실행 스케줄러
- 가짜 WebSocket
- SignalingHub / FastAPI 앱 / 클라이언트
"""

import inspect
from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from duochat.core.config import Settings
from duochat.main import create_app
from duochat.services.connection_registry import ConnectionRegistry
from duochat.services.room_store import RoomStore
from duochat.services.scheduling import RetryPolicy
from duochat.services.signaling_hub import SignalingHub
from duochat.services.signaling_service import ConnectionManager

DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
MOBILE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"


class FakeClock:
    """테스트가 직접 움직이는 시계 (epoch seconds)"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualScheduler:
    """call_later 요청을 기록만 하고 테스트가 원할 때 실행"""

    def __init__(self):
        self.pending: list[tuple[float, Callable[[], Any]]] = []
        self.cancelled = False

    def call_later(self, delay: float, callback: Callable[[], Any]) -> None:
        self.pending.append((delay, callback))

    @property
    def delays(self) -> list[float]:
        return [delay for delay, _ in self.pending]

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    async def run_all(self) -> None:
        """예약된 작업을 지연 순서대로 모두 실행"""
        pending = sorted(self.pending, key=lambda item: item[0])
        self.pending = []
        for _, callback in pending:
            result = callback()
            if inspect.isawaitable(result):
                await result

    def cancel_all(self) -> None:
        self.pending = []
        self.cancelled = True


# ===== 테스트 설정 =====


@pytest.fixture
def test_settings() -> Settings:
    """테스트용 설정 (짧은 재전송 지연, 연결별 작업은 사실상 비활성, 텔레메트리 비활성)"""
    return Settings(
        debug=True,
        empty_room_grace_seconds=30.0,
        inactive_room_ttl_seconds=3600.0,
        user_connected_retry_delays=[0.01, 0.02],
        existing_users_retry_delays=[0.015, 0.025],
        mobile_keep_alive_interval_seconds=60.0,
        connection_optimized_delay_seconds=60.0,
        telemetry_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


# ===== 서비스 Fixture =====


@pytest.fixture
def store(scheduler: ManualScheduler, clock: FakeClock) -> RoomStore:
    return RoomStore(scheduler=scheduler, clock=clock, grace_seconds=30.0, inactive_ttl_seconds=3600.0)


@pytest.fixture
def registry(clock: FakeClock) -> ConnectionRegistry:
    return ConnectionRegistry(clock=clock, stale_after_seconds=300.0)


@pytest.fixture
def hub(
    store: RoomStore,
    registry: ConnectionRegistry,
    scheduler: ManualScheduler,
    clock: FakeClock,
    test_settings: Settings,
) -> SignalingHub:
    return SignalingHub(
        store=store,
        registry=registry,
        connections=ConnectionManager(),
        scheduler=scheduler,
        user_connected_policy=RetryPolicy.from_delays(test_settings.user_connected_retry_delays),
        existing_users_policy=RetryPolicy.from_delays(test_settings.existing_users_retry_delays),
        clock=clock,
    )


# ===== 가짜 WebSocket =====


def make_websocket() -> MagicMock:
    """accept/send_json/close만 갖는 WebSocket mock"""
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


@pytest.fixture
def connect(hub: SignalingHub):
    """허브에 가짜 연결을 붙이는 factory

    Usage:
        ws = await connect("conn-a")
    """

    async def _connect(connection_id: str, user_agent: str = DESKTOP_UA) -> MagicMock:
        websocket = make_websocket()
        await hub.connections.connect(connection_id, websocket)
        hub.registry.register(connection_id, ip="127.0.0.1", user_agent=user_agent)
        return websocket

    return _connect


@pytest.fixture
def sent() -> Callable[..., list[dict]]:
    """가짜 WebSocket으로 보낸 메시지 조회

    Usage:
        sent(ws)              -> 전체
        sent(ws, "pong")      -> 해당 type만
    """

    def _sent(websocket: MagicMock, msg_type: str | None = None) -> list[dict]:
        messages = [call.args[0] for call in websocket.send_json.call_args_list]
        if msg_type is None:
            return messages
        return [message for message in messages if message.get("type") == msg_type]

    return _sent


# ===== FastAPI Fixture =====


@pytest.fixture
def app(test_settings: Settings):
    return create_app(test_settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """동기 FastAPI TestClient

    WebSocket 흐름 테스트에 사용
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """비동기 FastAPI TestClient

    REST 엔드포인트 테스트에 사용
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
