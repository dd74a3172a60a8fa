"""방 ID 생성 및 형식 검증"""

import secrets

from duochat.core.signaling_config import (
    ROOM_ID_ALPHABET,
    ROOM_ID_LENGTH,
    ROOM_ID_PATTERN,
    USER_ID_MAX_LENGTH,
)


def generate_room_id(length: int = ROOM_ID_LENGTH) -> str:
    """구분자 없는 영숫자 방 ID 생성"""
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(length))


def is_valid_room_id(room_id: object) -> bool:
    """영숫자 6~8자인지 확인"""
    return isinstance(room_id, str) and ROOM_ID_PATTERN.fullmatch(room_id) is not None


def is_valid_user_id(user_id: object) -> bool:
    """클라이언트가 생성한 사용자 ID 확인 (공백이 아닌 문자열)"""
    return isinstance(user_id, str) and bool(user_id.strip()) and len(user_id) <= USER_ID_MAX_LENGTH
