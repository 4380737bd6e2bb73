"""共享测试夹具: 回环网络、事件记录器、房主/加入者会话工厂"""

from __future__ import annotations

from typing import Any

import pytest

from i18n import set_locale
from roomlink.config import RoomConfig
from roomlink.loopback import LoopbackNetwork
from roomlink.session import RoomSession


class Recorder:
    """记录会话发出的 (事件名, 负载)"""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def __call__(self, name: str, payload: Any) -> None:
        self.events.append((name, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[Any]:
        return [payload for n, payload in self.events if n == name]

    def last(self, name: str) -> Any:
        matches = self.of(name)
        return matches[-1] if matches else None

    def last_players(self) -> list[str] | None:
        """最近一次成员快照 (joined / player-joined / player-left)"""
        for name, payload in reversed(self.events):
            if name in ("joined", "player-joined", "player-left"):
                return payload["players"]
        return None

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture(autouse=True)
def _english_messages():
    set_locale("en_US")
    yield
    set_locale("en_US")


@pytest.fixture
def make_recorder():
    return Recorder


@pytest.fixture
def network() -> LoopbackNetwork:
    return LoopbackNetwork()


@pytest.fixture
def config() -> RoomConfig:
    return RoomConfig(address_prefix="test-", join_timeout=15.0, max_reconnect_attempts=3)


@pytest.fixture
def host_session(network, config):
    """已创建房间的房主会话 → (session, recorder)"""
    session = RoomSession(network.transport(), config=config)
    recorder = Recorder()
    session.host("Host", recorder)
    network.flush()
    yield session, recorder
    session.destroy()


@pytest.fixture
def make_client(network, config, host_session):
    """创建一个加入 host_session 房间的会话 (未 flush)"""
    created: list[RoomSession] = []

    def _make(name: str, code: str | None = None) -> tuple[RoomSession, Recorder]:
        session = RoomSession(network.transport(), config=config)
        recorder = Recorder()
        session.join(name, code or host_session[0].room_code, recorder)
        created.append(session)
        return session, recorder

    yield _make
    for session in created:
        session.destroy()
