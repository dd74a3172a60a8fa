"""방 입장(Room Admission) API 스키마"""

from pydantic import BaseModel, Field

ROOM_NAME_MAX_LENGTH = 100


class CreateRoomRequest(BaseModel):
    """방 생성 요청"""
    room_name: str | None = Field(default=None, alias="roomName", max_length=ROOM_NAME_MAX_LENGTH)
    is_secret: bool = Field(default=False, alias="isSecret")

    class Config:
        populate_by_name = True


class CreateRoomResponse(BaseModel):
    """방 생성 응답"""
    room_id: str = Field(serialization_alias="roomId")
    room_name: str = Field(serialization_alias="roomName")
    is_secret: bool = Field(serialization_alias="isSecret")

    class Config:
        populate_by_name = True


class RoomSummary(BaseModel):
    """공개 방 목록의 항목"""
    name: str
    users: list[str]
    user_count: int = Field(serialization_alias="userCount")
    created_at: int = Field(serialization_alias="createdAt")
    last_activity: int = Field(serialization_alias="lastActivity")
    is_secret: bool = Field(serialization_alias="isSecret")

    class Config:
        populate_by_name = True


class RoomListResponse(BaseModel):
    """공개 방 목록 응답"""
    total_rooms: int = Field(serialization_alias="totalRooms")
    active_users: int = Field(serialization_alias="activeUsers")
    rooms: dict[str, RoomSummary]

    class Config:
        populate_by_name = True


class RoomExistsResponse(BaseModel):
    """방 존재 여부 응답"""
    exists: bool
    room_id: str = Field(serialization_alias="roomId")

    class Config:
        populate_by_name = True


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    rooms: int
    active_users: int = Field(serialization_alias="activeUsers")
    connections: int
    timestamp: str

    class Config:
        populate_by_name = True


class ConnectionStatsResponse(BaseModel):
    """연결 품질 통계 응답"""
    total_connections: int = Field(serialization_alias="totalConnections")
    total_rooms: int = Field(serialization_alias="totalRooms")
    mobile_connections: int = Field(serialization_alias="mobileConnections")
    connection_quality: dict[str, str] = Field(serialization_alias="connectionQuality")

    class Config:
        populate_by_name = True


class DeviceInfoResponse(BaseModel):
    """기기 정보 응답"""
    is_mobile: bool = Field(serialization_alias="isMobile")
    user_agent: str = Field(serialization_alias="userAgent")

    class Config:
        populate_by_name = True
