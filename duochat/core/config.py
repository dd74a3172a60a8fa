from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # 앱 설정
    app_name: str = "Duochat Signaling API"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    cors_origins: list[str] = ["*"]

    # 방 수명주기 (초)
    empty_room_grace_seconds: float = 30.0
    inactive_room_ttl_seconds: float = 3600.0
    room_sweep_interval_seconds: float = 60.0

    # 연결 레지스트리 (초)
    stale_connection_seconds: float = 300.0
    connection_sweep_interval_seconds: float = 60.0

    # 연결별 백그라운드 작업 (초)
    mobile_keep_alive_interval_seconds: float = 15.0
    connection_optimized_delay_seconds: float = 1.0

    # 입장 알림 재전송 지연 (초)
    user_connected_retry_delays: list[float] = [0.1, 0.5, 1.0]
    existing_users_retry_delays: list[float] = [0.15, 0.6, 1.2]

    # 방 정원 (None이면 제한 없음)
    max_room_members: int | None = None

    # OpenTelemetry
    telemetry_enabled: bool = False
    otlp_endpoint: str | None = None


@lru_cache
def get_settings() -> Settings:
    """설정 싱글톤 반환"""
    return Settings()
