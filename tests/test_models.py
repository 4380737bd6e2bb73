"""Tests for roomlink.models (Pydantic 入站校验)."""

import pytest
from pydantic import ValidationError

from roomlink.models import (
    DATA_VALIDATORS,
    GameStartData,
    JoinData,
    PlayersData,
    is_valid_player_name,
    validate_wire_message,
)


class TestValidateWireMessage:
    def test_join(self):
        data = validate_wire_message({"type": "join", "name": "Alice"})
        assert isinstance(data, JoinData)
        assert data.name == "Alice"

    def test_empty_type(self):
        with pytest.raises(ValidationError):
            validate_wire_message({"type": "  "})

    def test_unknown_type(self):
        with pytest.raises(KeyError):
            validate_wire_message({"type": "teleport"})

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            validate_wire_message({"type": "join", "name": "x" * 33})

    def test_players_must_be_strings(self):
        with pytest.raises(ValidationError):
            validate_wire_message({"type": "joined", "players": [1, 2]})

    def test_players_not_empty(self):
        with pytest.raises(ValidationError):
            PlayersData.model_validate({"players": []})

    def test_game_start_local_id_required(self):
        with pytest.raises(ValidationError):
            GameStartData.model_validate({"state": {}})

    def test_game_start_local_id_may_be_any(self):
        data = GameStartData.model_validate({"state": {}, "localId": 3})
        assert data.localId == 3

    def test_error_message_required(self):
        with pytest.raises(ValidationError):
            validate_wire_message({"type": "error"})

    def test_chat_accepts_arbitrary_fields(self):
        validate_wire_message({"type": "chat", "text": "hi", "emoji": ["x"]})


def test_every_wire_type_has_validator():
    from roomlink.protocol import MsgType

    assert set(DATA_VALIDATORS) == {t.value for t in MsgType}


@pytest.mark.parametrize("name, ok", [
    ("Alice", True),
    ("x" * 32, True),
    ("x" * 33, False),
    ("", False),
    ("   ", False),
    (None, False),
])
def test_is_valid_player_name(name, ok):
    assert is_valid_player_name(name) is ok
