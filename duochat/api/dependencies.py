"""공유 API dependencies - 엔드포인트 간 중복 제거"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from starlette.requests import HTTPConnection

from duochat.core.config import Settings
from duochat.services.signaling_hub import SignalingHub
from duochat.utils.room_id import is_valid_room_id


def get_hub(conn: HTTPConnection) -> SignalingHub:
    """앱 상태에 주입된 SignalingHub (HTTP/WebSocket 공용)"""
    return conn.app.state.hub


HubDep = Annotated[SignalingHub, Depends(get_hub)]


def get_app_settings(conn: HTTPConnection) -> Settings:
    """create_app에 전달된 설정"""
    return conn.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# ===== Validation Dependencies =====


def valid_room_id(room_id: str) -> str:
    """방 ID 형식 검증 (저장소 조회 전)"""
    if not is_valid_room_id(room_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_ROOM_ID", "message": "Room id must be 6-8 alphanumeric characters"},
        )
    return room_id


ValidRoomId = Annotated[str, Depends(valid_room_id)]
