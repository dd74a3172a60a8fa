"""연결 레지스트리 단위 테스트"""

import pytest

from duochat.schemas.signaling import ConnectionQuality, SessionState
from duochat.services.connection_registry import classify_quality, is_mobile_user_agent

MOBILE_UA = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Mobile Safari/537.36"


@pytest.mark.parametrize(
    "latency,expected",
    [
        (0, ConnectionQuality.GOOD),
        (500, ConnectionQuality.GOOD),
        (501, ConnectionQuality.FAIR),
        (1000, ConnectionQuality.FAIR),
        (1001, ConnectionQuality.POOR),
    ],
)
def test_classify_quality_thresholds(latency, expected):
    assert classify_quality(latency) is expected


def test_is_mobile_user_agent():
    assert is_mobile_user_agent(MOBILE_UA) is True
    assert is_mobile_user_agent("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") is False
    assert is_mobile_user_agent(None) is False


def test_register_records_device(registry, clock):
    """등록 시 기기 정보와 시각 기록"""
    record = registry.register("conn-a", ip="10.0.0.1", user_agent=MOBILE_UA)

    assert record.is_mobile is True
    assert record.connected_at == clock.now
    assert record.state is SessionState.DISCONNECTED
    assert "conn-a" in registry
    assert registry.mobile_count == 1


def test_heartbeat_measures_latency(registry, clock):
    """ping 시각 차이로 지연과 품질 산정"""
    registry.register("conn-a")
    client_ms = clock.now * 1000 - 1200

    record = registry.heartbeat("conn-a", client_ms)

    assert record.latency_ms == pytest.approx(1200)
    assert record.quality is ConnectionQuality.POOR


def test_heartbeat_with_future_client_time_clamps_to_zero(registry, clock):
    """클라이언트 시계가 앞서 있어도 지연은 음수가 되지 않음"""
    registry.register("conn-a")

    record = registry.heartbeat("conn-a", clock.now * 1000 + 5000)

    assert record.latency_ms == 0
    assert record.quality is ConnectionQuality.GOOD


def test_heartbeat_unknown_connection(registry):
    assert registry.heartbeat("missing", 0) is None


def test_associate_counts_reconnects(registry):
    """재연결로 연결될 때만 재연결 횟수 증가"""
    registry.register("conn-a")
    registry.associate("conn-a", "room0001", "userA")
    record = registry.associate("conn-a", "room0001", "userA", reconnect=True)

    assert record.room_id == "room0001"
    assert record.user_id == "userA"
    assert record.disconnection_count == 1


def test_report_quality_stores_details(registry):
    registry.register("conn-a")

    record = registry.report_quality("conn-a", ConnectionQuality.FAIR, {"packetLoss": 0.05})

    assert record.quality is ConnectionQuality.FAIR
    assert record.quality_details == {"packetLoss": 0.05}


def test_unregister_marks_disconnected(registry):
    registry.register("conn-a")
    registry.set_state("conn-a", SessionState.JOINED)

    record = registry.unregister("conn-a")

    assert record.state is SessionState.DISCONNECTED
    assert "conn-a" not in registry
    assert registry.unregister("conn-a") is None


def test_sweep_removes_stale_connections(registry, clock):
    """5분 넘게 응답 없는 연결만 정리"""
    registry.register("conn-old")
    clock.advance(200)
    registry.register("conn-new")
    clock.advance(101)

    stale = registry.sweep()

    assert stale == ["conn-old"]
    assert "conn-new" in registry


def test_stats_snapshot(registry):
    registry.register("conn-a", user_agent=MOBILE_UA)
    registry.register("conn-b")

    stats = registry.stats()

    assert stats["total_connections"] == 2
    assert stats["mobile_connections"] == 1
    assert stats["connection_quality"] == {"conn-a": "good", "conn-b": "good"}
