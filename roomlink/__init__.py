"""房主权威的多人房间会话 (roomlink)
基于点对点有序可靠通道的房间生命周期、成员簿记与消息路由
"""

from .config import RoomConfig, get_config
from .events import EventDispatcher, RoomEvent
from .loopback import LoopbackNetwork, LoopbackTransport
from .membership import Room
from .protocol import MsgType, decode_message
from .relay import RelayServer, WebSocketTransport
from .session import ReconnectPolicy, RoomSession, SessionState

__all__ = [
    "RoomSession", "SessionState", "ReconnectPolicy",
    "Room", "RoomEvent", "EventDispatcher",
    "MsgType", "decode_message",
    "RoomConfig", "get_config",
    "LoopbackNetwork", "LoopbackTransport",
    "RelayServer", "WebSocketTransport",
]
