"""进程内回环传输

所有 Endpoint 注册在同一个 LoopbackNetwork 中。事件不会在调用处立即触发，
而是进入 FIFO 队列，由 flush() 在同一线程里依次执行，从而模拟
"单线程、事件驱动" 的调度模型；定时器使用虚拟时钟，由 advance() 推进。

用于本地对战 (同一进程的多个会话) 以及测试。
"""

from __future__ import annotations

import heapq
import itertools
import json
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from .errors import ChannelClosedError, TransportUnavailableError
from .transport import Channel, Endpoint, Timer, Transport, TransportErrorKind

logger = logging.getLogger(__name__)


class LoopbackTimer(Timer):
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class LoopbackChannel(Channel):
    """回环通道: 一对 LoopbackChannel 互为对端"""

    def __init__(self, network: LoopbackNetwork, owner: LoopbackEndpoint, peer: str):
        super().__init__()
        self._network = network
        self.owner = owner
        self.peer = peer
        self.partner: LoopbackChannel | None = None
        self._open = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    def _set_open(self) -> None:
        if self._closed or self._open:
            return
        self._open = True
        self.emit("open")

    def send(self, message: Any) -> None:
        if not self.is_open or self.partner is None:
            raise ChannelClosedError(self.peer)
        # 模拟 JSON 序列化: 对端拿到的是独立副本
        payload = json.loads(json.dumps(message))
        self._network.post(self.partner._deliver, payload)

    def _deliver(self, message: Any) -> None:
        if self.is_open:
            self.emit("data", message)

    def close(self) -> None:
        if self._closed:
            return
        self._mark_closed()
        if self.partner is not None:
            self._network.post(self.partner._mark_closed)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.owner._forget(self)
        self._network.post(self.emit, "close")

    def fail(self, error: Exception) -> None:
        """测试辅助: 在本端触发 error 事件"""
        self._network.post(self.emit, "error", error)


class LoopbackEndpoint(Endpoint):
    def __init__(self, network: LoopbackNetwork, address: str):
        super().__init__()
        self._network = network
        self.id = address
        self._channels: list[LoopbackChannel] = []
        self._destroyed = False
        self.reconnect_calls = 0

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def channels(self) -> list[LoopbackChannel]:
        return list(self._channels)

    def _forget(self, channel: LoopbackChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    def connect(self, address: str, *, reliable: bool = True,
                serialization: str = "json") -> LoopbackChannel:
        channel = LoopbackChannel(self._network, self, address)
        self._channels.append(channel)
        self._network.post(self._network._establish, self, channel, address)
        return channel

    def reconnect(self) -> None:
        self.reconnect_calls += 1
        self._network.post(self._network._reregister, self)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        for channel in list(self._channels):
            channel.close()
        self._network._unregister(self)

    def call_later(self, delay: float, callback: Callable[[], None]) -> LoopbackTimer:
        return self._network.schedule(delay, callback)

    def emit(self, event: str, *args: Any) -> None:
        # 销毁后不再对外触发任何事件
        if not self._destroyed:
            super().emit(event, *args)


class LoopbackNetwork:
    """回环网络: 地址注册表 + 事件队列 + 虚拟时钟"""

    def __init__(self, online: bool = True):
        self.online = online
        self.now: float = 0.0
        self._endpoints: dict[str, LoopbackEndpoint] = {}
        self._queue: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._timers: list[tuple[float, int, LoopbackTimer]] = []
        self._timer_seq = itertools.count()
        self.unreachable: set[str] = set()

    # ==================== 调度 ====================

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.append((fn, args))

    def flush(self, limit: int = 100_000) -> int:
        """执行队列中的所有事件 (包括执行过程中新产生的)，返回执行条数"""
        count = 0
        while self._queue:
            if count >= limit:
                raise RuntimeError(f"loopback queue did not drain after {limit} events")
            fn, args = self._queue.popleft()
            fn(*args)
            count += 1
        return count

    def schedule(self, delay: float, callback: Callable[[], None]) -> LoopbackTimer:
        timer = LoopbackTimer(self.now + delay, callback)
        heapq.heappush(self._timers, (timer.when, next(self._timer_seq), timer))
        return timer

    def advance(self, seconds: float) -> None:
        """推进虚拟时钟，按时间顺序触发到期定时器"""
        target = self.now + seconds
        self.flush()
        while self._timers and self._timers[0][0] <= target:
            when, _, timer = heapq.heappop(self._timers)
            self.now = when
            if not timer.cancelled:
                timer.callback()
            self.flush()
        self.now = target

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled)

    # ==================== 注册表 ====================

    def endpoint(self, address: str) -> LoopbackEndpoint | None:
        return self._endpoints.get(address)

    def _register(self, endpoint: LoopbackEndpoint) -> None:
        if endpoint.destroyed:
            return
        existing = self._endpoints.get(endpoint.id)
        if existing is not None and existing is not endpoint:
            endpoint.emit("error", TransportErrorKind.UNAVAILABLE_ID.value)
            return
        self._endpoints[endpoint.id] = endpoint
        endpoint.emit("open", endpoint.id)

    def _reregister(self, endpoint: LoopbackEndpoint) -> None:
        if not self.online:
            endpoint.emit("error", TransportErrorKind.NETWORK.value)
            return
        self._register(endpoint)

    def _unregister(self, endpoint: LoopbackEndpoint) -> None:
        if self._endpoints.get(endpoint.id) is endpoint:
            del self._endpoints[endpoint.id]

    def _establish(self, source: LoopbackEndpoint, channel: LoopbackChannel,
                   address: str) -> None:
        if source.destroyed or channel._closed:
            return
        if address in self.unreachable:
            # 模拟防火墙后的房主: 既不打开也不报错
            return
        target = self._endpoints.get(address)
        if target is None:
            source._forget(channel)
            source.emit("error", TransportErrorKind.PEER_UNAVAILABLE.value)
            return
        remote = LoopbackChannel(self, target, source.id)
        remote.partner = channel
        channel.partner = remote
        target._channels.append(remote)
        target.emit("connection", remote)
        self.post(channel._set_open)
        self.post(remote._set_open)

    def drop_signalling(self, address: str) -> None:
        """模拟 Endpoint 与信令服务断开 (通道保持)"""
        endpoint = self._endpoints.get(address)
        if endpoint is not None:
            self.post(endpoint.emit, "disconnected")

    def transport(self) -> LoopbackTransport:
        return LoopbackTransport(self)


class LoopbackTransport(Transport):
    def __init__(self, network: LoopbackNetwork):
        self.network = network

    def open(self, address: str) -> LoopbackEndpoint:
        if not self.network.online:
            raise TransportUnavailableError("loopback network is offline")
        endpoint = LoopbackEndpoint(self.network, address)
        self.network.post(self.network._register, endpoint)
        return endpoint
