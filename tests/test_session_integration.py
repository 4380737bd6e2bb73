"""
多会话集成测试
同一回环网络上的一个房主与多个加入者完整走一遍房间生命周期
"""

from roomlink.session import RoomSession, SessionState


def test_full_lifecycle(network, host_session, make_client):
    host, host_rec = host_session
    clients = [make_client(name) for name in ("A", "B", "C")]
    network.flush()

    expected = ["Host", "A", "B", "C"]
    assert host.players == expected
    for _, rec in clients:
        assert rec.last_players() == expected

    # 开始游戏: 每人拿到与其席位一致的 ID
    host.start_game()
    network.flush()
    state = host_rec.last("game-start")["state"]
    ids = [p["id"] for p in state["players"]]
    assert len(set(ids)) == len(ids)
    assert host.local_player_id == ids[0]
    for seat, (session, rec) in enumerate(clients, start=1):
        assert rec.last("game-start") == {"state": state, "localId": ids[seat]}
        assert session.local_player_id == ids[seat]

    # 操作 → 房主，状态 → 全体
    clients[1][0].send_action({"play": "card-7"})
    network.flush()
    assert host_rec.last("action") == {"play": "card-7"}
    host.broadcast_state({"turn": 1})
    network.flush()
    for _, rec in clients:
        assert rec.last("state-update") == {"state": {"turn": 1}}

    # 一人离开
    clients[0][0].destroy()
    network.flush()
    remaining = ["Host", "B", "C"]
    assert host.players == remaining
    for _, rec in clients[1:]:
        assert rec.last("player-left") == {"players": remaining}

    # 房主解散
    host.destroy()
    network.flush()
    for session, _ in clients[1:]:
        assert session.state is SessionState.TERMINATED


def test_simultaneous_joins_converge(network, host_session, make_client):
    host, _ = host_session
    # 所有加入者在同一轮事件中发起握手
    clients = [make_client(f"P{i}") for i in range(5)]
    network.flush()
    final = host.players
    assert final[0] == "Host"
    assert sorted(final[1:]) == sorted(f"P{i}" for i in range(5))
    for _, rec in clients:
        assert rec.last_players() == final


def test_ninth_member_rejected(network, host_session, make_client):
    host, _ = host_session
    clients = [make_client(f"P{i}") for i in range(8)]
    network.flush()
    assert len(host.players) == 8
    rejected = [rec for _, rec in clients if rec.of("error")]
    assert len(rejected) == 1
    assert rejected[0].of("joined") == []


def test_chat_reaches_everyone_including_sender(network, host_session, make_client):
    _, host_rec = host_session
    clients = [make_client(name) for name in ("A", "B")]
    network.flush()
    clients[0][0].send_chat({"from": "A", "text": "hi all"})
    network.flush()
    assert host_rec.of("chat") == [{"from": "A", "text": "hi all"}]
    for _, rec in clients:
        assert rec.of("chat") == [{"from": "A", "text": "hi all"}]


def test_independent_rooms(network, config, make_recorder):
    """同一网络上的两个房间互不干扰"""
    sessions = []
    recs = []
    for name in ("H1", "H2"):
        session = RoomSession(network.transport(), config=config)
        rec = make_recorder()
        session.host(name, rec)
        sessions.append(session)
        recs.append(rec)
    network.flush()
    joiner = RoomSession(network.transport(), config=config)
    joiner_rec = make_recorder()
    joiner.join("J", sessions[1].room_code, joiner_rec)
    network.flush()
    assert sessions[0].players == ["H1"]
    assert sessions[1].players == ["H2", "J"]
    assert recs[0].of("player-joined") == []
    for session in (*sessions, joiner):
        session.destroy()
