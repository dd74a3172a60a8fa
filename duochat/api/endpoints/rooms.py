"""방 입장(Room Admission) REST 엔드포인트"""

from typing import Annotated

from fastapi import APIRouter, Header, Request

from duochat.api.dependencies import HubDep, ValidRoomId
from duochat.core.signaling_config import USER_AGENT_PREVIEW_LENGTH
from duochat.core.telemetry import get_signaling_metrics
from duochat.schemas import (
    ConnectionStatsResponse,
    CreateRoomRequest,
    CreateRoomResponse,
    DeviceInfoResponse,
    HTTPErrorResponse,
    RoomExistsResponse,
    RoomListResponse,
    RoomSummary,
)
from duochat.services.connection_registry import is_mobile_user_agent
from duochat.utils.clock import to_ms


router = APIRouter(prefix="/api", tags=["Rooms"])


@router.post(
    "/rooms/create",
    response_model=CreateRoomResponse,
)
async def create_room(
    request: Request,
    hub: HubDep,
    body: CreateRoomRequest | None = None,
) -> CreateRoomResponse:
    """방 생성 (ID는 서버에서 발급)"""
    body = body or CreateRoomRequest()
    creator_address = request.client.host if request.client else None
    room = hub.store.create_room(
        name=body.room_name,
        secret=body.is_secret,
        creator_address=creator_address,
    )

    metrics = get_signaling_metrics()
    if metrics:
        metrics.record_room_created()

    return CreateRoomResponse(room_id=room.id, room_name=room.name, is_secret=room.is_secret)


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(hub: HubDep) -> RoomListResponse:
    """공개 방 목록 (비밀 방 제외)

    activeUsers는 비밀 방을 포함한 전체 입장 인원이다.
    """
    public_rooms = hub.store.list_public_rooms()
    return RoomListResponse(
        total_rooms=len(public_rooms),
        active_users=hub.store.total_members,
        rooms={
            room.id: RoomSummary(
                name=room.name,
                users=room.member_ids,
                user_count=room.member_count,
                created_at=to_ms(room.created_at),
                last_activity=to_ms(room.last_activity),
                is_secret=room.is_secret,
            )
            for room in public_rooms
        },
    )


@router.get(
    "/room/{room_id}",
    response_model=RoomExistsResponse,
    responses={400: {"model": HTTPErrorResponse}},
)
async def check_room(room_id: ValidRoomId, hub: HubDep) -> RoomExistsResponse:
    """방 존재 여부 확인"""
    return RoomExistsResponse(exists=hub.store.room_exists(room_id), room_id=room_id)


@router.get("/connection-stats", response_model=ConnectionStatsResponse)
async def connection_stats(hub: HubDep) -> ConnectionStatsResponse:
    """연결 품질 통계"""
    stats = hub.registry.stats()
    return ConnectionStatsResponse(
        total_connections=stats["total_connections"],
        total_rooms=len(hub.store),
        mobile_connections=stats["mobile_connections"],
        connection_quality=stats["connection_quality"],
    )


@router.get("/device-info", response_model=DeviceInfoResponse)
async def device_info(
    user_agent: Annotated[str | None, Header()] = None,
) -> DeviceInfoResponse:
    """요청 기기 정보 (디버깅용)"""
    user_agent = user_agent or ""
    return DeviceInfoResponse(
        is_mobile=is_mobile_user_agent(user_agent),
        user_agent=user_agent[:USER_AGENT_PREVIEW_LENGTH],
    )
