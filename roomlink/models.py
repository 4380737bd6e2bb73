"""线路消息 Pydantic 校验模型

为 roomlink/protocol.py 中的消息变体提供入站校验。
decode_message 先按 type 选出校验模型，校验通过后再构造内部 dataclass；
校验失败抛出 pydantic.ValidationError，由 decode_message 统一降级为 Unknown。

设计原则:
  - 校验模型与内部 dataclass 分离 (校验层 vs 业务层)
  - 使用 extra="ignore"，允许对端附带本端不认识的字段 (向前兼容)
  - chat 的字段完全由调用方定义，只校验外层结构
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

MAX_NAME_LENGTH = 32
MAX_SNAPSHOT_SIZE = 8


class WireMsgModel(BaseModel):
    """所有线路消息的外层结构"""

    model_config = ConfigDict(extra="allow")

    type: str

    @field_validator("type")
    @classmethod
    def type_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("消息类型不能为空")
        return v


class JoinData(BaseModel):
    """join 消息校验"""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("昵称不能为空白")
        return v


class PlayersData(BaseModel):
    """joined / player-joined / player-left 的成员快照"""

    model_config = ConfigDict(extra="ignore")

    players: list[str] = Field(min_length=1, max_length=MAX_SNAPSHOT_SIZE)


class ActionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payload: Any = None


class ChatData(BaseModel):
    model_config = ConfigDict(extra="allow")


class GameStartData(BaseModel):
    """game-start: 完整状态快照 + 接收方的本地玩家 ID"""

    model_config = ConfigDict(extra="ignore")

    state: dict[str, Any]
    localId: Any


class StateUpdateData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    state: Any


class ErrorData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str


# ====================================================================== #
#  消息类型 → 校验模型映射                                                  #
# ====================================================================== #

DATA_VALIDATORS: dict[str, type[BaseModel]] = {
    "join": JoinData,
    "joined": PlayersData,
    "player-joined": PlayersData,
    "player-left": PlayersData,
    "action": ActionData,
    "chat": ChatData,
    "game-start": GameStartData,
    "state-update": StateUpdateData,
    "error": ErrorData,
}


def validate_wire_message(obj: dict[str, Any]) -> BaseModel:
    """校验一条已反序列化的线路消息，返回对应 type 的校验模型实例。

    流程:
      1. 用 WireMsgModel 校验外层结构 (type 字段)
      2. 根据 type 查找 DATA_VALIDATORS 校验其余字段

    Raises:
        pydantic.ValidationError: 校验失败
        KeyError: type 不在已知集合中
    """
    msg = WireMsgModel.model_validate(obj)
    validator_cls = DATA_VALIDATORS[msg.type]
    return validator_cls.model_validate(obj)


def is_valid_player_name(name: Any) -> bool:
    """昵称是否满足 join 消息的校验规则 (1-32 字符且不全为空白)"""
    try:
        JoinData.model_validate({"name": name})
    except ValidationError:
        return False
    return True
