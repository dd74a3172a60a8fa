import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from duochat import __version__
from duochat.api.router import api_router
from duochat.core.config import Settings, get_settings
from duochat.core.telemetry import instrument_fastapi, setup_telemetry
from duochat.schemas import HealthResponse
from duochat.services.maintenance import MaintenanceRunner
from duochat.services.signaling_hub import SignalingHub

settings = get_settings()

# 로깅 설정
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 라이프사이클"""
    hub: SignalingHub = app.state.hub
    app_settings: Settings = app.state.settings

    # 시작 시: Telemetry 초기화, 정리 작업 시작
    if app_settings.telemetry_enabled:
        setup_telemetry("duochat-signaling", __version__, app_settings.otlp_endpoint, hub.stats)

    maintenance = MaintenanceRunner(
        hub,
        room_sweep_interval=app_settings.room_sweep_interval_seconds,
        connection_sweep_interval=app_settings.connection_sweep_interval_seconds,
    )
    maintenance.start()
    logger.info(f"Signaling server ready on port {app_settings.port}")
    yield
    # 종료 시: 클라이언트에 알리고 예약 작업 정리
    logger.info("Shutting down server...")
    await hub.shutdown()
    await maintenance.stop()


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """FastAPI 앱 생성"""
    app_settings = app_settings or settings

    app = FastAPI(
        title=app_settings.app_name,
        version=__version__,
        description="Duochat - two-person video chat signaling server",
        debug=app_settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.hub = SignalingHub.from_settings(app_settings)

    # OpenTelemetry FastAPI 계측
    if app_settings.telemetry_enabled:
        instrument_fastapi(app)

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """헬스 체크"""
        stats = request.app.state.hub.stats()
        return HealthResponse(
            status="ok",
            rooms=stats["rooms"],
            active_users=stats["active_users"],
            connections=stats["connections"],
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    return app


app = create_app()


def run() -> None:
    """uvicorn으로 서버 실행 (duochat 콘솔 스크립트)"""
    uvicorn.run(
        "duochat.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
