"""Tests for roomlink.config."""

import dataclasses

import pytest

from roomlink.config import RoomConfig, get_config, reset_config


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


class TestRoomConfig:
    def test_defaults(self, monkeypatch):
        for key in ("ROOMLINK_ADDRESS_PREFIX", "ROOMLINK_JOIN_TIMEOUT", "ROOMLINK_MAX_RECONNECT"):
            monkeypatch.delenv(key, raising=False)
        cfg = RoomConfig()
        assert cfg.max_members == 8
        assert cfg.room_code_length == 5
        assert cfg.address_prefix == "room-"
        assert cfg.join_timeout == 15.0
        assert cfg.max_reconnect_attempts == 3

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ROOMLINK_ADDRESS_PREFIX", "lan-")
        monkeypatch.setenv("ROOMLINK_JOIN_TIMEOUT", "2.5")
        monkeypatch.setenv("ROOMLINK_MAX_RECONNECT", "5")
        monkeypatch.setenv("ROOMLINK_RELAY_URL", "ws://relay:9100")
        cfg = RoomConfig.from_env()
        assert cfg.address_prefix == "lan-"
        assert cfg.join_timeout == 2.5
        assert cfg.max_reconnect_attempts == 5
        assert cfg.relay_url == "ws://relay:9100"

    def test_invalid_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("ROOMLINK_JOIN_TIMEOUT", "soon")
        monkeypatch.setenv("ROOMLINK_RELAY_PORT", "x")
        cfg = RoomConfig()
        assert cfg.join_timeout == 15.0
        assert cfg.relay_port == 9000

    def test_frozen(self):
        cfg = RoomConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.max_members = 10


class TestGlobalConfig:
    def test_lazy_singleton(self):
        assert get_config() is get_config()

    def test_reset_reloads_env(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("ROOMLINK_ADDRESS_PREFIX", "other-")
        assert get_config() is first
        reset_config()
        assert get_config().address_prefix == "other-"
