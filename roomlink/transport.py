"""传输层契约

会话协调器只依赖这里定义的最小接口:
- Transport.open(address) → Endpoint: 在某地址下注册本端
- Endpoint 事件: open(id) / connection(channel) / error(kind) / disconnected()
- Endpoint.connect(address) → Channel: 向另一端发起点对点通道
- Channel 事件: open() / data(message) / close() / error(exc)
- Channel.send(message): 单通道内按发送顺序可靠投递

具体实现见 loopback.py (进程内) 与 relay.py (WebSocket 中继)。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any


class TransportErrorKind(Enum):
    """Endpoint error 事件的错误类别"""

    UNAVAILABLE_ID = "unavailable-id"       # 地址已被占用
    PEER_UNAVAILABLE = "peer-unavailable"   # 目标地址不存在
    NETWORK = "network"                     # 网络错误
    SERVER_ERROR = "server-error"           # 信令/中继服务错误
    OTHER = "other"


class Emitter:
    """极简事件分发器，Endpoint 与 Channel 共用"""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """注册事件回调 (同一事件可注册多个，按注册顺序调用)"""
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: str) -> None:
        self._listeners.pop(event, None)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, ())):
            handler(*args)


class Timer(ABC):
    """可取消的定时器句柄"""

    @abstractmethod
    def cancel(self) -> None: ...


class Channel(Emitter, ABC):
    """两端之间有序、可靠的双向消息通道"""

    peer: str

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    def send(self, message: Any) -> None:
        """发送一条消息；通道未打开时抛出 ChannelClosedError"""

    @abstractmethod
    def close(self) -> None: ...


class Endpoint(Emitter, ABC):
    """在传输层注册的本端句柄"""

    id: str

    @abstractmethod
    def connect(self, address: str, *, reliable: bool = True,
                serialization: str = "json") -> Channel: ...

    @abstractmethod
    def reconnect(self) -> None:
        """断开 (disconnected) 后重新注册同一地址"""

    @abstractmethod
    def destroy(self) -> None:
        """关闭所有通道并释放地址；幂等"""

    @property
    @abstractmethod
    def destroyed(self) -> bool: ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer: ...


class Transport(ABC):
    """Endpoint 工厂"""

    @abstractmethod
    def open(self, address: str) -> Endpoint:
        """在 address 下注册本端。

        注册结果通过 Endpoint 的 open / error 事件异步报告。

        Raises:
            TransportUnavailableError: 环境中没有可用的传输
        """
