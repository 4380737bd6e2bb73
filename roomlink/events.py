"""事件回调出口

会话协调器通过唯一的回调把房间/游戏事件通知上层 (UI / 游戏层)。
事件名是封闭集合 RoomEvent，协调器不会发出集合之外的事件。
回调在消息处理过程中同步调用，不能阻塞；耗时工作应由调用方自行延后。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class RoomEvent(Enum):
    """通知上层的事件名"""

    ROOM_CREATED = "room-created"
    PLAYER_JOINED = "player-joined"
    PLAYER_LEFT = "player-left"
    JOINED = "joined"
    GAME_START = "game-start"
    STATE_UPDATE = "state-update"
    CHAT = "chat"
    ACTION = "action"
    ERROR = "error"


# sink(event_name, payload)
EventSink = Callable[[str, Any], None]


class EventDispatcher:
    """包装调用方注册的回调

    - 只接受 RoomEvent 中的事件
    - 回调抛出的异常记录日志后吞掉，不穿透协调器边界
    - detach() 之后不再投递任何事件
    """

    def __init__(self, sink: EventSink | None = None):
        self._sink = sink

    @property
    def attached(self) -> bool:
        return self._sink is not None

    def detach(self) -> None:
        self._sink = None

    def notify(self, event: RoomEvent, payload: Any = None) -> None:
        if not isinstance(event, RoomEvent):
            raise ValueError(f"unknown room event: {event!r}")
        if self._sink is None:
            logger.debug(f"回调已解除，丢弃事件 {event.value}")
            return
        try:
            self._sink(event.value, payload)
        except Exception:
            logger.exception(f"事件回调异常 ({event.value})")

    def error(self, message: str) -> None:
        """上报用户可见的错误"""
        self.notify(RoomEvent.ERROR, {"message": message})
