"""线路协议定义
房主与加入者之间交换的消息均为带 type 标签的结构化记录 (dict)，
由传输层负责序列化。

协议设计:
- 加入者 → 房主: join / action / chat
- 房主 → 加入者: joined / player-joined / player-left / game-start /
  state-update / chat / error
- 每种 type 对应一个不可变 dataclass，构成封闭的标签联合
- 未知 type 或字段不合法的消息解码为 Unknown，由路由层忽略 (向前兼容)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from pydantic import ValidationError

from .models import validate_wire_message

logger = logging.getLogger(__name__)


class MsgType(Enum):
    """线路消息类型"""

    JOIN = "join"                       # 请求加入
    JOINED = "joined"                   # 加入成功 (完整成员快照)
    PLAYER_JOINED = "player-joined"     # 成员加入广播
    PLAYER_LEFT = "player-left"         # 成员离开广播
    ACTION = "action"                   # 玩家操作 (不透明负载)
    CHAT = "chat"                       # 聊天
    GAME_START = "game-start"           # 游戏开始
    STATE_UPDATE = "state-update"       # 状态同步
    ERROR = "error"                     # 错误


# ==================== 消息变体 ====================

@dataclass(frozen=True)
class Join:
    name: str
    type: ClassVar[MsgType] = MsgType.JOIN

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "name": self.name}


@dataclass(frozen=True)
class _PlayersMsg:
    """携带完整成员快照的消息，单条即可重建成员视图 (幂等)"""
    players: list[str]
    type: ClassVar[MsgType]

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "players": list(self.players)}


@dataclass(frozen=True)
class Joined(_PlayersMsg):
    type: ClassVar[MsgType] = MsgType.JOINED


@dataclass(frozen=True)
class PlayerJoined(_PlayersMsg):
    type: ClassVar[MsgType] = MsgType.PLAYER_JOINED


@dataclass(frozen=True)
class PlayerLeft(_PlayersMsg):
    type: ClassVar[MsgType] = MsgType.PLAYER_LEFT


@dataclass(frozen=True)
class Action:
    payload: Any
    type: ClassVar[MsgType] = MsgType.ACTION

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}


@dataclass(frozen=True)
class Chat:
    """聊天字段由上层自定义 (如 from / text)，原样透传"""
    fields: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[MsgType] = MsgType.CHAT

    def to_wire(self) -> dict[str, Any]:
        body = {k: v for k, v in self.fields.items() if k != "type"}
        return {"type": self.type.value, **body}


@dataclass(frozen=True)
class GameStart:
    state: dict[str, Any]
    local_id: Any
    type: ClassVar[MsgType] = MsgType.GAME_START

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "state": self.state, "localId": self.local_id}


@dataclass(frozen=True)
class StateUpdate:
    state: Any
    # 对端附带的其他字段，原样保留
    extra: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[MsgType] = MsgType.STATE_UPDATE

    def to_wire(self) -> dict[str, Any]:
        body = {k: v for k, v in self.extra.items() if k not in ("type", "state")}
        return {"type": self.type.value, **body, "state": self.state}


@dataclass(frozen=True)
class ErrorMsg:
    message: str
    type: ClassVar[MsgType] = MsgType.ERROR

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


@dataclass(frozen=True)
class Unknown:
    """无法识别的消息: 未知 type、非 dict 负载或字段校验失败"""
    type_name: str
    raw: Any = None

    def to_wire(self) -> Any:
        return self.raw


WireMessage = Union[
    Join, Joined, PlayerJoined, PlayerLeft, Action, Chat,
    GameStart, StateUpdate, ErrorMsg, Unknown,
]


# ==================== 解码 ====================

def _action_payload(raw: dict[str, Any]) -> Any:
    # 对端未包装 payload 时，整条记录即为负载
    payload = raw.get("payload")
    return payload if payload is not None else raw


_BUILDERS: dict[MsgType, Any] = {
    MsgType.JOIN: lambda raw, data: Join(name=data.name),
    MsgType.JOINED: lambda raw, data: Joined(players=list(data.players)),
    MsgType.PLAYER_JOINED: lambda raw, data: PlayerJoined(players=list(data.players)),
    MsgType.PLAYER_LEFT: lambda raw, data: PlayerLeft(players=list(data.players)),
    MsgType.ACTION: lambda raw, data: Action(payload=_action_payload(raw)),
    MsgType.CHAT: lambda raw, data: Chat(fields={k: v for k, v in raw.items() if k != "type"}),
    MsgType.GAME_START: lambda raw, data: GameStart(state=raw["state"], local_id=raw["localId"]),
    MsgType.STATE_UPDATE: lambda raw, data: StateUpdate(
        state=raw["state"],
        extra={k: v for k, v in raw.items() if k not in ("type", "state")},
    ),
    MsgType.ERROR: lambda raw, data: ErrorMsg(message=data.message),
}


def decode_message(raw: Any) -> WireMessage:
    """把传输层交付的记录解码为消息变体。永不抛出异常。"""
    if not isinstance(raw, dict):
        return Unknown(type_name="", raw=raw)

    type_str = raw.get("type", "")
    if not isinstance(type_str, str):
        return Unknown(type_name="", raw=raw)
    try:
        msg_type = MsgType(type_str)
    except ValueError:
        return Unknown(type_name=type_str, raw=raw)

    try:
        data = validate_wire_message(raw)
    except ValidationError as e:
        logger.warning(f"消息校验失败 ({type_str}): {e.error_count()} 处错误")
        return Unknown(type_name=type_str, raw=raw)

    return _BUILDERS[msg_type](raw, data)


def to_wire(msg: WireMessage) -> Any:
    """编码为传输层可序列化的记录"""
    return msg.to_wire()
