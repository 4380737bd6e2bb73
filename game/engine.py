"""
游戏引擎协作方
会话层只要求引擎根据有序的玩家列表生成权威状态快照:
快照中 players 的顺序与输入一致 (下标 0 为房主)，每项带唯一 id。
"""

from __future__ import annotations

from typing import Any, Protocol


class GameEngine(Protocol):
    """游戏引擎接口"""

    def create_snapshot(self, player_names: list[str]) -> dict[str, Any]:
        """根据玩家列表生成初始状态快照"""
        ...


class SnapshotEngine:
    """最小参考实现: 只负责分配座位与玩家 ID，不包含任何规则"""

    def __init__(self, id_prefix: str = "p"):
        self.id_prefix = id_prefix

    def create_snapshot(self, player_names: list[str]) -> dict[str, Any]:
        players = [
            {"id": f"{self.id_prefix}{seat + 1}", "name": name, "seat": seat}
            for seat, name in enumerate(player_names)
        ]
        return {"players": players, "turn": 0, "round": 1}
