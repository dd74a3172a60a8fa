"""시그널링 메트릭 단위 테스트"""

from unittest.mock import MagicMock

from duochat.core.telemetry import SignalingMetrics, get_signaling_metrics, timed_operation


def test_metrics_disabled_by_default():
    assert get_signaling_metrics() is None


def test_signaling_metrics_records_counters():
    """카운터마다 별도 instrument에 기록"""
    meter = MagicMock()
    meter.create_counter.side_effect = lambda **kwargs: MagicMock(name=kwargs["name"])
    metrics = SignalingMetrics(meter)

    metrics.record_room_created()
    metrics.record_room_deleted("empty")
    metrics.record_relay("offer")

    metrics.rooms_created_total.add.assert_called_once_with(1)
    metrics.rooms_deleted_total.add.assert_called_once_with(1, {"reason": "empty"})
    metrics.messages_relayed_total.add.assert_called_once_with(1, {"type": "offer"})
    meter.create_observable_gauge.assert_not_called()


def test_signaling_metrics_gauges_read_stats_provider():
    meter = MagicMock()
    SignalingMetrics(meter, stats_provider=lambda: {"rooms": 3, "active_users": 5, "connections": 6})

    assert meter.create_observable_gauge.call_count == 3
    gauges = {
        call.kwargs["name"]: call.kwargs["callbacks"][0]
        for call in meter.create_observable_gauge.call_args_list
    }
    observations = gauges["duochat_rooms"](MagicMock())
    assert observations[0].value == 3
    assert gauges["duochat_connections"](MagicMock())[0].value == 6


def test_timed_operation_measures_duration():
    with timed_operation() as timer:
        pass

    assert timer.duration >= 0.0
