"""방 저장소 - 방 수명주기 및 멤버십 관리

모든 변경은 단일 이벤트 루프에서 동기적으로 일어나므로 잠금을 쓰지 않는다.
방 멤버십(room.members)과 역색인(user_id -> room_id, connection_id -> (room_id, user_id))은
항상 같은 호출 안에서 함께 변경된다.
"""

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from duochat.services.scheduling import DeferredScheduler
from duochat.utils.room_id import generate_room_id

logger = logging.getLogger(__name__)

# 방 ID 충돌 시 재생성 시도 횟수
MAX_ID_GENERATION_ATTEMPTS = 32


class RoomFullError(ValueError):
    """정원이 찬 방에 입장 시도"""

    def __init__(self, room_id: str, capacity: int):
        super().__init__(f"Room {room_id} is full ({capacity} members)")
        self.room_id = room_id
        self.capacity = capacity


@dataclass
class Room:
    """방 상태"""

    id: str
    name: str
    created_at: float
    last_activity: float
    is_secret: bool = False
    creator_address: str | None = None
    # user_id -> 현재 connection_id
    members: dict[str, str] = field(default_factory=dict)

    @property
    def member_ids(self) -> list[str]:
        return list(self.members)

    @property
    def member_count(self) -> int:
        return len(self.members)

    def is_empty(self) -> bool:
        return not self.members

    def has_member(self, user_id: str) -> bool:
        return user_id in self.members

    def other_members(self, user_id: str) -> list[str]:
        return [member for member in self.members if member != user_id]

    def touch(self, now: float) -> None:
        # last_activity는 감소하지 않는다
        self.last_activity = max(self.last_activity, now)


@dataclass(frozen=True)
class JoinResult:
    """입장 결과"""

    room: Room
    other_members: list[str]
    evicted_from: list[str]
    created: bool


@dataclass(frozen=True)
class RejoinResult:
    """재입장 결과"""

    room: Room
    evicted_from: list[str]


@dataclass(frozen=True)
class LeaveResult:
    """퇴장 결과"""

    room_id: str
    user_id: str
    removed: bool
    now_empty: bool


class RoomStore:
    """방 목록과 멤버십의 단일 출처"""

    def __init__(
        self,
        scheduler: DeferredScheduler | None = None,
        clock: Callable[[], float] = time.time,
        grace_seconds: float = 30.0,
        inactive_ttl_seconds: float = 3600.0,
        max_members: int | None = None,
        id_factory: Callable[[], str] = generate_room_id,
    ):
        self._scheduler = scheduler
        self._clock = clock
        self.grace_seconds = grace_seconds
        self.inactive_ttl_seconds = inactive_ttl_seconds
        self.max_members = max_members
        self._id_factory = id_factory
        # room_id -> Room
        self._rooms: dict[str, Room] = {}
        # user_id -> room_id
        self._user_rooms: dict[str, str] = {}
        # connection_id -> (room_id, user_id)
        self._connection_members: dict[str, tuple[str, str]] = {}
        # 삭제 훅 (room_id, reason) - 메트릭 기록용
        self.on_room_deleted: Callable[[str, str], None] | None = None

    # ===== 조회 =====

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def room_exists(self, room_id: str) -> bool:
        return room_id in self._rooms

    def room_of(self, user_id: str) -> str | None:
        """사용자가 현재 속한 방 ID"""
        return self._user_rooms.get(user_id)

    def membership_of(self, connection_id: str) -> tuple[str, str] | None:
        """연결이 현재 대표하는 (room_id, user_id)"""
        return self._connection_members.get(connection_id)

    @property
    def total_members(self) -> int:
        return sum(room.member_count for room in self._rooms.values())

    def list_public_rooms(self) -> list[Room]:
        """비밀 방을 제외한 방 목록"""
        return [room for room in self._rooms.values() if not room.is_secret]

    # ===== 생성 =====

    def create_room(
        self,
        name: str | None = None,
        secret: bool = False,
        creator_address: str | None = None,
    ) -> Room:
        """새 방 생성 (ID는 서버에서 생성)"""
        room_id = self._new_room_id()
        now = self._clock()
        room = Room(
            id=room_id,
            name=name or f"Room {room_id}",
            created_at=now,
            last_activity=now,
            is_secret=secret,
            creator_address=creator_address,
        )
        self._rooms[room_id] = room
        logger.info(f"New room created: {room_id} - Name: {room.name} - Secret: {secret}")
        return room

    def ensure_room(self, room_id: str) -> Room:
        """방이 없으면 기본 방을 만들어 반환 (방 URL 직접 접근 대응)"""
        room = self._rooms.get(room_id)
        if room is None:
            now = self._clock()
            room = Room(id=room_id, name=f"Room {room_id}", created_at=now, last_activity=now)
            self._rooms[room_id] = room
            logger.info(f"Room {room_id} doesn't exist, created new room")
        return room

    def _new_room_id(self) -> str:
        for _ in range(MAX_ID_GENERATION_ATTEMPTS):
            room_id = self._id_factory()
            if room_id not in self._rooms:
                return room_id
        raise RuntimeError("Room id space exhausted")

    # ===== 멤버십 =====

    def join(self, room_id: str, user_id: str, connection_id: str) -> JoinResult:
        """방 입장

        다른 방에 있던 사용자는 먼저 그 방에서 제거한다.

        Returns:
            JoinResult (입장 시점 다른 멤버 스냅샷 포함)

        Raises:
            RoomFullError: max_members가 설정되어 있고 정원이 찬 경우
        """
        created = room_id not in self._rooms
        room = self._rooms.get(room_id)
        if (
            room is not None
            and self.max_members is not None
            and not room.has_member(user_id)
            and room.member_count >= self.max_members
        ):
            raise RoomFullError(room_id, self.max_members)

        room = self.ensure_room(room_id)
        evicted_from = self._evict_elsewhere(user_id, keep_room_id=room_id)
        self._add_member(room, user_id, connection_id)

        logger.info(f"User {user_id} joined room {room_id}, members: {room.member_ids}")
        return JoinResult(
            room=room,
            other_members=room.other_members(user_id),
            evicted_from=evicted_from,
            created=created,
        )

    def rejoin(self, room_id: str, user_id: str, connection_id: str) -> RejoinResult | None:
        """재연결 후 재입장 (멱등)

        Returns:
            RejoinResult (다른 방에서 빠진 경우 그 방 ID 포함), 방이 없으면 None
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None

        evicted_from = self._evict_elsewhere(user_id, keep_room_id=room_id)
        self._add_member(room, user_id, connection_id)
        logger.info(f"User {user_id} rejoined room {room_id}")
        return RejoinResult(room=room, evicted_from=evicted_from)

    def leave(
        self,
        room_id: str,
        user_id: str,
        reason: str,
        connection_id: str | None = None,
    ) -> LeaveResult:
        """방 퇴장

        connection_id가 주어졌는데 현재 멤버의 연결과 다르면 (이미 새 연결로 재입장한 경우)
        아무것도 하지 않는다. 방이 비면 즉시 삭제하지 않고 유예 후 삭제를 예약한다.
        """
        room = self._rooms.get(room_id)
        if room is None or not room.has_member(user_id):
            return LeaveResult(room_id, user_id, removed=False, now_empty=room is not None and room.is_empty())

        if connection_id is not None and room.members[user_id] != connection_id:
            logger.info(
                f"Ignoring stale {reason} for user {user_id} in room {room_id} "
                f"(connection {connection_id} superseded)"
            )
            return LeaveResult(room_id, user_id, removed=False, now_empty=False)

        self._remove_member(room, user_id)
        logger.info(f"User {user_id} left room {room_id} ({reason}), members: {room.member_ids}")
        return LeaveResult(room_id, user_id, removed=True, now_empty=room.is_empty())

    def end_conversation(self, room_id: str, by_user_id: str) -> Room | None:
        """대화 종료 - 유예 없이 즉시 방 삭제

        Returns:
            삭제된 방 (멤버 스냅샷 유지), 방이 없으면 None
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None
        self._delete_room(room_id, reason="ended")
        logger.info(f"Room {room_id} deleted by {by_user_id}")
        return room

    def delete_if_empty(self, room_id: str) -> bool:
        """유예 삭제 본체 - 실행 시점에 방이 여전히 비어 있을 때만 삭제"""
        room = self._rooms.get(room_id)
        if room is None or not room.is_empty():
            return False
        self._delete_room(room_id, reason="empty")
        logger.info(f"Room {room_id} deleted (empty)")
        return True

    def sweep_inactive(self, now: float | None = None) -> list[str]:
        """비어 있고 오래 활동이 없는 방 정리"""
        now = self._clock() if now is None else now
        expired = [
            room.id
            for room in self._rooms.values()
            if room.is_empty() and now - room.last_activity > self.inactive_ttl_seconds
        ]
        for room_id in expired:
            self._delete_room(room_id, reason="inactive")
            logger.info(f"Cleaned up inactive room: {room_id}")
        if expired:
            logger.info(f"Cleaned up {len(expired)} inactive rooms")
        return expired

    # ===== 내부 =====

    def _evict_elsewhere(self, user_id: str, keep_room_id: str) -> list[str]:
        previous_room_id = self._user_rooms.get(user_id)
        if previous_room_id is None or previous_room_id == keep_room_id:
            return []

        previous = self._rooms.get(previous_room_id)
        if previous is None:
            self._user_rooms.pop(user_id, None)
            return []

        self._remove_member(previous, user_id)
        logger.info(f"Removed user {user_id} from previous room {previous_room_id}")
        return [previous_room_id]

    def _add_member(self, room: Room, user_id: str, connection_id: str) -> None:
        previous_connection = room.members.get(user_id)
        if previous_connection is not None and previous_connection != connection_id:
            self._forget_connection(previous_connection, room.id, user_id)
        room.members[user_id] = connection_id
        self._user_rooms[user_id] = room.id
        self._connection_members[connection_id] = (room.id, user_id)
        room.touch(self._clock())

    def _forget_connection(self, connection_id: str, room_id: str, user_id: str) -> None:
        if self._connection_members.get(connection_id) == (room_id, user_id):
            del self._connection_members[connection_id]

    def _remove_member(self, room: Room, user_id: str) -> None:
        connection_id = room.members.pop(user_id, None)
        if connection_id is not None:
            self._forget_connection(connection_id, room.id, user_id)
        if self._user_rooms.get(user_id) == room.id:
            del self._user_rooms[user_id]
        room.touch(self._clock())
        if room.is_empty():
            self._schedule_deletion(room.id)

    def _schedule_deletion(self, room_id: str) -> None:
        if self._scheduler is None:
            return
        self._scheduler.call_later(self.grace_seconds, lambda: self.delete_if_empty(room_id))

    def _delete_room(self, room_id: str, reason: str) -> None:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return
        for user_id, connection_id in room.members.items():
            if self._user_rooms.get(user_id) == room_id:
                del self._user_rooms[user_id]
            self._forget_connection(connection_id, room_id, user_id)
        if self.on_room_deleted is not None:
            self.on_room_deleted(room_id, reason)
