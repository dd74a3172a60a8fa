"""OpenTelemetry 계측 설정

시그널링 서버의 OTel 초기화와 커스텀 메트릭을 제공합니다.
초기화하지 않으면 get_signaling_metrics()는 None을 반환하고 호출자는 기록을 건너뜁니다.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.semconv.resource import ResourceAttributes

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# 게이지 콜백이 읽는 현재 상태 (rooms, active_users, connections)
StatsProvider = Callable[[], dict[str, int]]


def init_telemetry(
    service_name: str,
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> tuple[trace.Tracer, metrics.Meter]:
    """OpenTelemetry 초기화

    Args:
        service_name: 서비스 이름 (예: "duochat-signaling")
        service_version: 서비스 버전
        otlp_endpoint: OTLP 수신 엔드포인트 (기본값: OTEL_EXPORTER_OTLP_ENDPOINT 환경변수)

    Returns:
        (Tracer, Meter) 튜플
    """
    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: service_name,
            ResourceAttributes.SERVICE_VERSION: service_version,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: os.getenv("APP_ENV", "development"),
        }
    )

    # span은 아직 export하지 않고 로컬 tracer만 설정
    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=10000,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)

    tracer = trace.get_tracer(service_name, service_version)
    meter = metrics.get_meter(service_name, service_version)

    logger.info(
        "Telemetry initialized: service=%s, endpoint=%s",
        service_name,
        endpoint,
    )

    return tracer, meter


def instrument_fastapi(app: FastAPI) -> None:
    """FastAPI 자동 계측"""
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


# ===========================================
# 시그널링 전용 메트릭
# ===========================================


class SignalingMetrics:
    """시그널링 서버 커스텀 메트릭"""

    def __init__(self, meter: metrics.Meter, stats_provider: StatsProvider | None = None):
        self.meter = meter
        self._stats_provider = stats_provider
        self._init_room_metrics()
        self._init_message_metrics()
        if stats_provider is not None:
            self._init_gauges()

    def _init_room_metrics(self) -> None:
        """방 수명주기 메트릭"""
        self.rooms_created_total = self.meter.create_counter(
            name="duochat_rooms_created_total",
            description="생성된 방 수",
        )
        self.rooms_deleted_total = self.meter.create_counter(
            name="duochat_rooms_deleted_total",
            description="삭제된 방 수 (reason: ended/empty/inactive)",
        )

    def _init_message_metrics(self) -> None:
        """메시지 처리 메트릭"""
        self.messages_relayed_total = self.meter.create_counter(
            name="duochat_messages_relayed_total",
            description="상대에게 중계된 메시지 수",
        )
        self.handler_duration = self.meter.create_histogram(
            name="duochat_handler_duration_seconds",
            description="시그널링 메시지 처리 시간",
            unit="s",
        )

    def _init_gauges(self) -> None:
        """현재 상태 게이지"""
        self.meter.create_observable_gauge(
            name="duochat_rooms",
            callbacks=[self._observe("rooms")],
            description="현재 방 수",
        )
        self.meter.create_observable_gauge(
            name="duochat_active_users",
            callbacks=[self._observe("active_users")],
            description="방에 입장한 사용자 수",
        )
        self.meter.create_observable_gauge(
            name="duochat_connections",
            callbacks=[self._observe("connections")],
            description="열린 WebSocket 연결 수",
        )

    def _observe(self, key: str):
        def callback(_options: metrics.CallbackOptions) -> Iterable[metrics.Observation]:
            stats = self._stats_provider() if self._stats_provider else {}
            return [metrics.Observation(stats.get(key, 0))]

        return callback

    def record_room_created(self) -> None:
        self.rooms_created_total.add(1)

    def record_room_deleted(self, reason: str) -> None:
        self.rooms_deleted_total.add(1, {"reason": reason})

    def record_relay(self, message_type: str) -> None:
        self.messages_relayed_total.add(1, {"type": message_type})


# ===========================================
# 싱글톤 인스턴스 및 접근자
# ===========================================

_tracer: trace.Tracer | None = None
_meter: metrics.Meter | None = None
_signaling_metrics: SignalingMetrics | None = None
_initialized: bool = False


def get_tracer() -> trace.Tracer:
    """Tracer 인스턴스 반환 (초기화 안 된 경우 noop tracer 반환)"""
    if _tracer is None:
        return trace.get_tracer("duochat-noop")
    return _tracer


def get_signaling_metrics() -> SignalingMetrics | None:
    """시그널링 메트릭 인스턴스 반환 (초기화 안 된 경우 None)"""
    return _signaling_metrics


def setup_telemetry(
    service_name: str,
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
    stats_provider: StatsProvider | None = None,
) -> None:
    """전역 telemetry 설정 (애플리케이션 시작 시 호출)"""
    global _tracer, _meter, _signaling_metrics, _initialized

    if _initialized:
        logger.warning("Telemetry already initialized, skipping")
        return

    _tracer, _meter = init_telemetry(service_name, service_version, otlp_endpoint)
    _signaling_metrics = SignalingMetrics(_meter, stats_provider)
    _initialized = True


@contextmanager
def timed_operation():
    """시간 측정 컨텍스트 매니저

    Usage:
        with timed_operation() as timer:
            # do something
        # timer.duration에 경과 시간 저장됨
    """

    class Timer:
        def __init__(self):
            self.start_time = time.perf_counter()
            self.duration: float = 0.0

    timer = Timer()
    try:
        yield timer
    finally:
        timer.duration = time.perf_counter() - timer.start_time
