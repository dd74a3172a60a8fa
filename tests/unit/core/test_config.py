"""설정 관련 단위 테스트"""

from duochat.core.config import Settings
from duochat.core.signaling_config import get_ice_servers


def test_settings_defaults():
    """수명주기 기본값"""
    settings = Settings(_env_file=None)

    assert settings.empty_room_grace_seconds == 30.0
    assert settings.inactive_room_ttl_seconds == 3600.0
    assert settings.stale_connection_seconds == 300.0
    assert settings.user_connected_retry_delays == [0.1, 0.5, 1.0]
    assert settings.existing_users_retry_delays == [0.15, 0.6, 1.2]
    assert settings.max_room_members is None
    assert settings.mobile_keep_alive_interval_seconds == 15.0
    assert settings.connection_optimized_delay_seconds == 1.0
    assert settings.telemetry_enabled is False


def test_settings_from_env(monkeypatch):
    """환경변수는 대소문자 구분 없이 읽음"""
    monkeypatch.setenv("EMPTY_ROOM_GRACE_SECONDS", "5")
    monkeypatch.setenv("max_room_members", "2")

    settings = Settings()

    assert settings.empty_room_grace_seconds == 5.0
    assert settings.max_room_members == 2


def test_settings_from_fixture(test_settings: Settings):
    assert test_settings.debug is True
    assert test_settings.user_connected_retry_delays == [0.01, 0.02]


def test_ice_servers_are_copies():
    servers = get_ice_servers()
    servers[0]["urls"] = "changed"

    assert get_ice_servers()[0]["urls"] != "changed"
    assert len(get_ice_servers(is_mobile=True)) == len(servers) + 2
