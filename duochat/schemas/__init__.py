from duochat.schemas.common import ErrorResponse, HTTPErrorResponse
from duochat.schemas.room import (
    ConnectionStatsResponse,
    CreateRoomRequest,
    CreateRoomResponse,
    DeviceInfoResponse,
    HealthResponse,
    RoomExistsResponse,
    RoomListResponse,
    RoomSummary,
)

__all__ = [
    "ConnectionStatsResponse",
    "CreateRoomRequest",
    "CreateRoomResponse",
    "DeviceInfoResponse",
    "ErrorResponse",
    "HTTPErrorResponse",
    "HealthResponse",
    "RoomExistsResponse",
    "RoomListResponse",
    "RoomSummary",
]
