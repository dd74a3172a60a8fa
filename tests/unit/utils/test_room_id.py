"""ID 생성/검증 유틸 테스트"""

import pytest

from duochat.core.signaling_config import ROOM_ID_ALPHABET
from duochat.utils.room_id import generate_room_id, is_valid_room_id, is_valid_user_id


def test_generate_room_id_shape():
    room_id = generate_room_id()

    assert len(room_id) == 8
    assert set(room_id) <= set(ROOM_ID_ALPHABET)


def test_generate_room_id_is_random():
    assert len({generate_room_id() for _ in range(50)}) == 50


@pytest.mark.parametrize("room_id", ["abc123", "abc1234", "AbC12345"])
def test_valid_room_ids(room_id):
    assert is_valid_room_id(room_id)


@pytest.mark.parametrize("room_id", ["abc12", "abc123456", "abc-1234", "abc 1234", "", None, 12345678])
def test_invalid_room_ids(room_id):
    assert not is_valid_room_id(room_id)


def test_user_id_validation():
    assert is_valid_user_id("user-123")
    assert not is_valid_user_id("   ")
    assert not is_valid_user_id(None)
    assert not is_valid_user_id("u" * 129)
