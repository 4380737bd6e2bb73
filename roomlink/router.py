"""消息路由 (协议状态机)

按消息 type 分发入站消息:
- 房主侧: join → 成员登记 / action → 透传给上层 / chat → 广播
- 加入者侧: 成员快照、游戏开始、状态同步、聊天、错误 → 通知上层
- 未知 type 一律忽略 (向前兼容)，不视为错误
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from i18n import t as _t

from .errors import NameTakenError, RoomFullError
from .events import RoomEvent
from .protocol import (
    Action,
    Chat,
    ErrorMsg,
    GameStart,
    Join,
    Joined,
    MsgType,
    PlayerJoined,
    PlayerLeft,
    StateUpdate,
    Unknown,
    WireMessage,
    decode_message,
)

if TYPE_CHECKING:
    from .session import RoomSession
    from .transport import Channel

logger = logging.getLogger(__name__)


class MessageRouter:
    """会话的入站消息路由表"""

    def __init__(self, session: RoomSession):
        self._session = session
        self._host_handlers: dict[MsgType, Callable[[Channel, Any], None]] = {
            MsgType.JOIN: self._host_join,
            MsgType.ACTION: self._host_action,
            MsgType.CHAT: self._host_chat,
        }
        self._client_handlers: dict[MsgType, Callable[[Any], None]] = {
            MsgType.JOINED: self._client_joined,
            MsgType.PLAYER_JOINED: self._client_membership,
            MsgType.PLAYER_LEFT: self._client_membership,
            MsgType.GAME_START: self._client_game_start,
            MsgType.STATE_UPDATE: self._client_state_update,
            MsgType.CHAT: self._client_chat,
            MsgType.ERROR: self._client_error,
        }

    # ==================== 入口 ====================

    def handle_host_message(self, channel: Channel, raw: Any) -> None:
        """房主收到来自某条通道的消息"""
        if self._session.terminated:
            return
        msg = decode_message(raw)
        if isinstance(msg, Unknown) and msg.type_name == MsgType.JOIN.value:
            self._host_invalid_join(channel)
            return
        handler = self._host_handlers.get(getattr(msg, "type", None))
        if handler is None:
            logger.debug(f"房主忽略消息: {_type_name(msg)}")
            return
        logger.debug(f"房主收到 {msg.type.value} (来自 {channel.peer})")
        handler(channel, msg)

    def handle_client_message(self, raw: Any) -> None:
        """加入者收到来自房主通道的消息"""
        if self._session.terminated:
            return
        msg = decode_message(raw)
        handler = self._client_handlers.get(getattr(msg, "type", None))
        if handler is None:
            logger.debug(f"客户端忽略消息: {_type_name(msg)}")
            return
        logger.debug(f"客户端收到 {msg.type.value}")
        handler(msg)

    def handle_disconnect(self, channel: Channel) -> None:
        """房主侧通道关闭: 移除对应成员并广播 player-left"""
        session = self._session
        if session.terminated:
            return
        name = session.room.remove_channel(channel)
        if name is None:
            # 未完成握手的连接，不留痕迹
            logger.debug(f"未加入的连接已关闭: {channel.peer}")
            return
        players = session.room.snapshot()
        session.broadcast(PlayerLeft(players=players))
        session.events.notify(RoomEvent.PLAYER_LEFT, {"players": session.room.snapshot()})

    # ==================== 房主侧处理器 ====================

    def _host_join(self, channel: Channel, msg: Join) -> None:
        session = self._session
        room = session.room
        if room.name_of(channel) is not None:
            logger.warning(f"通道 {channel.peer} 重复发送 join，已忽略")
            return
        try:
            players = room.admit(msg.name, channel)
        except RoomFullError:
            logger.info(f"房间已满，拒绝 {msg.name}")
            session.send(channel, ErrorMsg(message=_t("error.room_full")))
            return
        except NameTakenError:
            logger.info(f"昵称 {msg.name} 已被使用，拒绝")
            session.send(channel, ErrorMsg(message=_t("error.name_taken", name=msg.name)))
            return

        session.send(channel, Joined(players=players))
        # 广播给所有成员，包括刚加入者
        session.broadcast(PlayerJoined(players=players))
        session.events.notify(RoomEvent.PLAYER_JOINED, {"players": room.snapshot()})

    def _host_invalid_join(self, channel: Channel) -> None:
        # 昵称不合法的 join 也必须回复，否则加入者会一直停在 joining
        session = self._session
        if session.room.name_of(channel) is not None:
            logger.warning(f"通道 {channel.peer} 重复发送 join，已忽略")
            return
        logger.info(f"昵称不合法，拒绝来自 {channel.peer} 的加入请求")
        session.send(channel, ErrorMsg(message=_t("error.invalid_name")))

    def _host_action(self, channel: Channel, msg: Action) -> None:
        self._session.events.notify(RoomEvent.ACTION, msg.payload)

    def _host_chat(self, channel: Channel, msg: Chat) -> None:
        # 原样回显给发送者，发送者的界面依赖该回显
        self._session.broadcast(msg)
        self._session.events.notify(RoomEvent.CHAT, dict(msg.fields))

    # ==================== 加入者侧处理器 ====================

    def _client_joined(self, msg: Joined) -> None:
        self._session._mark_joined()
        self._session.events.notify(RoomEvent.JOINED, {"players": list(msg.players)})

    def _client_membership(self, msg: PlayerJoined | PlayerLeft) -> None:
        self._session.events.notify(RoomEvent(msg.type.value), {"players": list(msg.players)})

    def _client_game_start(self, msg: GameStart) -> None:
        self._session._set_local_player_id(msg.local_id)
        self._session.events.notify(
            RoomEvent.GAME_START, {"state": msg.state, "localId": msg.local_id}
        )

    def _client_state_update(self, msg: StateUpdate) -> None:
        # 除 type 外的字段原样转交
        self._session.events.notify(RoomEvent.STATE_UPDATE, {**msg.extra, "state": msg.state})

    def _client_chat(self, msg: Chat) -> None:
        self._session.events.notify(RoomEvent.CHAT, dict(msg.fields))

    def _client_error(self, msg: ErrorMsg) -> None:
        self._session.events.notify(RoomEvent.ERROR, {"message": msg.message})


def _type_name(msg: WireMessage) -> str:
    msg_type = getattr(msg, "type", None)
    if isinstance(msg_type, MsgType):
        return msg_type.value
    return getattr(msg, "type_name", "") or "<无类型>"
