"""加入顺序的性质测试（Property-based）。

核心不变量：
1. 无论加入请求以何种顺序、何种批次到达，所有参与者最终看到同一份成员列表
2. 房主始终位于列表首位
3. 成员人数不超过 8，超出的加入者收到 room full 错误
4. start_game 分配的 ID 两两不同，且与席位一一对应
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from roomlink.config import RoomConfig
from roomlink.loopback import LoopbackNetwork
from roomlink.session import RoomSession

_CONFIG = RoomConfig(address_prefix="prop-", join_timeout=15.0, max_reconnect_attempts=3)

_names = st.lists(
    st.text(alphabet="abcdefghijklmnop", min_size=1, max_size=6),
    min_size=1,
    max_size=10,
    unique=True,
).filter(lambda names: "Host" not in names)


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def __call__(self, name: str, payload: object) -> None:
        self.events.append((name, payload))

    def last_players(self) -> list[str] | None:
        for name, payload in reversed(self.events):
            if name in ("joined", "player-joined", "player-left"):
                return payload["players"]
        return None

    def errors(self) -> list[object]:
        return [payload for name, payload in self.events if name == "error"]


def _run_room(names: list[str], flush_after: list[bool]):
    network = LoopbackNetwork()
    host = RoomSession(network.transport(), config=_CONFIG)
    host.host("Host", _Recorder())
    network.flush()
    clients = []
    for name, flush in zip(names, flush_after):
        session = RoomSession(network.transport(), config=_CONFIG)
        rec = _Recorder()
        session.join(name, host.room_code, rec)
        clients.append((name, session, rec))
        if flush:
            network.flush()
    network.flush()
    return network, host, clients


@given(data=st.data(), names=_names)
@settings(max_examples=60, deadline=None)
def test_members_converge(data: st.DataObject, names: list[str]) -> None:
    order = data.draw(st.permutations(names))
    flush_after = data.draw(st.lists(st.booleans(), min_size=len(order), max_size=len(order)))
    _, host, clients = _run_room(order, flush_after)

    final = host.players
    assert final[0] == "Host"
    assert len(final) == min(len(names) + 1, 8)
    assert len(set(final)) == len(final)

    for name, _, rec in clients:
        if name in final:
            assert rec.last_players() == final
            assert rec.errors() == []
        else:
            assert rec.errors(), f"{name} 未被接纳却没有收到错误"

    for session in [host] + [s for _, s, _ in clients]:
        session.destroy()


@given(names=_names)
@settings(max_examples=40, deadline=None)
def test_start_game_ids_match_seats(names: list[str]) -> None:
    network, host, clients = _run_room(names, [False] * len(names))
    host.start_game()
    network.flush()

    final = host.players
    ids = {}
    ids["Host"] = host.local_player_id
    for name, session, _ in clients:
        if name in final:
            ids[name] = session.local_player_id

    assert len(ids) == len(final)
    assert len(set(ids.values())) == len(final)
    assert None not in ids.values()

    for session in [host] + [s for _, s, _ in clients]:
        session.destroy()
