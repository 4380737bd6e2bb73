"""WebSocket 中继传输

RelayServer 充当信令 + 中继服务: 各端以地址注册，按地址建立逻辑通道，
通道数据由服务端转发。WebSocketTransport 是对应的客户端实现，
满足 transport.py 中的 Endpoint / Channel 契约。

帧格式 (JSON):
- 客户端 → 服务端: register{id} / connect{to, channel} / data{channel, payload} / close{channel}
- 服务端 → 客户端: open{id} / connection{channel, from} / opened{channel} /
  data{channel, payload} / close{channel} / error{kind, channel?}
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import connect
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed, WebSocketException

from i18n import t as _t

from .config import get_config
from .errors import ChannelClosedError, TransportUnavailableError
from .transport import Channel, Endpoint, Timer, Transport, TransportErrorKind

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection
    from websockets.asyncio.server import Server, ServerConnection

logger = logging.getLogger(__name__)


# ==================== 服务端 ====================

class RelayServer:
    """信令与数据中继服务端

    职责:
    1. 地址注册 (重复地址返回 unavailable-id)
    2. 建立逻辑通道 (目标不存在返回 peer-unavailable)
    3. 按通道转发数据，任一端断开时关闭其所有通道
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 9000,
                 max_message_size: int | None = None):
        self.host = host
        self.port = port
        self._max_message_size = max_message_size or get_config().max_message_size
        self.peers: dict[str, ServerConnection] = {}        # 地址 → websocket
        self.ws_to_peer: dict[ServerConnection, str] = {}   # websocket → 地址
        self.channels: dict[str, tuple[str, str]] = {}      # 通道 ID → (发起方, 接收方)
        self._handlers: dict[str, Callable[[ServerConnection, dict], Awaitable[None]]] = {
            "register": self._handle_register,
            "connect": self._handle_connect,
            "data": self._handle_data,
            "close": self._handle_close,
        }
        self._server: Server | None = None
        self._running = False

    # ==================== 消息收发 ====================

    async def _send(self, websocket: ServerConnection, frame: dict[str, Any]) -> None:
        try:
            await websocket.send(json.dumps(frame, ensure_ascii=False))
        except Exception as e:
            logger.warning(f"中继发送失败: {e}")

    async def _send_to(self, peer_id: str, frame: dict[str, Any]) -> None:
        websocket = self.peers.get(peer_id)
        if websocket is not None:
            await self._send(websocket, frame)

    def _other_end(self, websocket: ServerConnection, channel_id: Any) -> str | None:
        """返回通道另一端的地址；发送方不属于该通道时返回 None"""
        if not isinstance(channel_id, str):
            return None
        ends = self.channels.get(channel_id)
        me = self.ws_to_peer.get(websocket)
        if ends is None or me is None or me not in ends:
            return None
        return ends[1] if ends[0] == me else ends[0]

    async def _handle_frame(self, websocket: ServerConnection, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("收到无效 JSON")
            return
        if not isinstance(frame, dict):
            return
        handler = self._handlers.get(frame.get("op"))
        if handler is None:
            logger.debug(f"未知操作: {frame.get('op')!r}")
            return
        await handler(websocket, frame)

    # ==================== 处理器 ====================

    async def _handle_register(self, websocket: ServerConnection, frame: dict) -> None:
        peer_id = frame.get("id")
        if not isinstance(peer_id, str) or not peer_id:
            await self._send(websocket, {"op": "error", "kind": TransportErrorKind.OTHER.value})
            return
        owner = self.peers.get(peer_id)
        if owner is not None and owner is not websocket:
            logger.info(f"地址已被占用: {peer_id}")
            await self._send(websocket, {
                "op": "error", "kind": TransportErrorKind.UNAVAILABLE_ID.value,
            })
            return
        self.peers[peer_id] = websocket
        self.ws_to_peer[websocket] = peer_id
        logger.info(f"已注册: {peer_id}")
        await self._send(websocket, {"op": "open", "id": peer_id})

    async def _handle_connect(self, websocket: ServerConnection, frame: dict) -> None:
        source = self.ws_to_peer.get(websocket)
        channel_id = frame.get("channel")
        target = frame.get("to")
        if source is None or not isinstance(channel_id, str) or channel_id in self.channels:
            await self._send(websocket, {
                "op": "error", "kind": TransportErrorKind.OTHER.value, "channel": channel_id,
            })
            return
        if target not in self.peers:
            await self._send(websocket, {
                "op": "error", "kind": TransportErrorKind.PEER_UNAVAILABLE.value,
                "channel": channel_id,
            })
            return
        self.channels[channel_id] = (source, target)
        logger.debug(f"通道 {channel_id}: {source} → {target}")
        await self._send_to(target, {"op": "connection", "channel": channel_id, "from": source})
        await self._send_to(target, {"op": "opened", "channel": channel_id})
        await self._send(websocket, {"op": "opened", "channel": channel_id})

    async def _handle_data(self, websocket: ServerConnection, frame: dict) -> None:
        channel_id = frame.get("channel")
        other = self._other_end(websocket, channel_id)
        if other is None:
            return
        await self._send_to(other, {
            "op": "data", "channel": channel_id, "payload": frame.get("payload"),
        })

    async def _handle_close(self, websocket: ServerConnection, frame: dict) -> None:
        channel_id = frame.get("channel")
        other = self._other_end(websocket, channel_id)
        if other is None:
            return
        self.channels.pop(channel_id, None)
        await self._send_to(other, {"op": "close", "channel": channel_id})

    async def _drop(self, websocket: ServerConnection) -> None:
        """连接断开: 注销地址并关闭其参与的所有通道"""
        peer_id = self.ws_to_peer.pop(websocket, None)
        if peer_id is None:
            return
        if self.peers.get(peer_id) is websocket:
            del self.peers[peer_id]
        for channel_id, ends in list(self.channels.items()):
            if peer_id in ends:
                del self.channels[channel_id]
                other = ends[1] if ends[0] == peer_id else ends[0]
                await self._send_to(other, {"op": "close", "channel": channel_id})
        logger.info(f"已断开: {peer_id}")

    # ==================== 生命周期 ====================

    async def _connection_handler(self, websocket: ServerConnection) -> None:
        try:
            async for raw in websocket:
                await self._handle_frame(websocket, raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.warning(f"连接异常: {e}")
        finally:
            await self._drop(websocket)

    async def start(self) -> None:
        """绑定端口并开始服务 (port=0 时由系统分配端口)"""
        self._server = await serve(
            self._connection_handler,
            self.host,
            self.port,
            max_size=self._max_message_size,
        )
        sockets = list(self._server.sockets)
        if sockets:
            self.port = sockets[0].getsockname()[1]
        self._running = True
        logger.info(_t("relay.starting", host=self.host, port=self.port))

    async def stop(self) -> None:
        self._running = False
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        logger.info(_t("relay.stopped"))

    async def run(self) -> None:
        """启动并一直运行到 stop()"""
        await self.start()
        try:
            while self._running:
                await asyncio.sleep(1)
        finally:
            await self.stop()

    @property
    def url(self) -> str:
        host = "localhost" if self.host in ("0.0.0.0", "") else self.host
        return f"ws://{host}:{self.port}"


# ==================== 客户端 ====================

class AsyncioTimer(Timer):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class WebSocketChannel(Channel):
    """经中继转发的逻辑通道"""

    def __init__(self, endpoint: WebSocketEndpoint, channel_id: str, peer: str):
        super().__init__()
        self._endpoint = endpoint
        self.channel_id = channel_id
        self.peer = peer
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

    def _deliver(self, payload: Any) -> None:
        if self.is_open:
            self.emit("data", payload)

    def send(self, message: Any) -> None:
        if not self.is_open:
            raise ChannelClosedError(self.peer)
        self._endpoint._post({"op": "data", "channel": self.channel_id, "payload": message})

    def close(self) -> None:
        if self._closed:
            return
        self._endpoint._post({"op": "close", "channel": self.channel_id})
        self._mark_closed()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._endpoint._channels.pop(self.channel_id, None)
        self._endpoint._loop.call_soon(self.emit, "close")


class WebSocketEndpoint(Endpoint):
    """连接中继服务的本端

    运行在 asyncio 事件循环上；所有事件回调在接收循环中同步触发。
    出站帧经单一写协程发送，保证顺序。
    """

    def __init__(self, url: str, address: str, loop: asyncio.AbstractEventLoop,
                 max_message_size: int | None = None):
        super().__init__()
        self.url = url
        self.id = address
        self._loop = loop
        self._max_message_size = max_message_size or get_config().max_message_size
        self._channels: dict[str, WebSocketChannel] = {}
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._ws: ClientConnection | None = None
        self._tasks: set[asyncio.Task] = set()
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def emit(self, event: str, *args: Any) -> None:
        if not self._destroyed:
            super().emit(event, *args)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _post(self, frame: dict[str, Any]) -> None:
        # 在调用处序列化，不可序列化的负载直接向调用方抛出
        self._outbox.put_nowait(json.dumps(frame, ensure_ascii=False))

    # ==================== 连接循环 ====================

    def start(self) -> None:
        self._spawn(self._run())

    async def _run(self) -> None:
        try:
            ws = await connect(self.url, max_size=self._max_message_size)
        except (OSError, WebSocketException) as e:
            logger.warning(f"无法连接中继 {self.url}: {e}")
            self.emit("error", TransportErrorKind.NETWORK.value)
            return
        if self._destroyed:
            await ws.close()
            return

        self._ws = ws
        writer: asyncio.Task | None = None
        try:
            # register 必须先于排队中的帧到达
            await ws.send(json.dumps({"op": "register", "id": self.id}))
            writer = self._loop.create_task(self._writer(ws))
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed:
            pass
        finally:
            if writer is not None:
                writer.cancel()
            self._ws = None
            if not self._destroyed:
                logger.warning(f"与中继的连接已断开: {self.id}")
                for channel in list(self._channels.values()):
                    channel._mark_closed()
                self.emit("disconnected")

    async def _writer(self, ws: ClientConnection) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await ws.send(data)
            except ConnectionClosed:
                return

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("中继帧不是合法 JSON")
            return
        if not isinstance(frame, dict):
            return
        op = frame.get("op")
        channel_id = frame.get("channel")
        channel = self._channels.get(channel_id) if isinstance(channel_id, str) else None

        if op == "open":
            self.emit("open", frame.get("id", self.id))
        elif op == "error":
            if channel is not None:
                channel._closed = True
                self._channels.pop(channel.channel_id, None)
            self.emit("error", frame.get("kind", TransportErrorKind.OTHER.value))
        elif op == "connection" and isinstance(channel_id, str):
            incoming = WebSocketChannel(self, channel_id, frame.get("from", ""))
            self._channels[incoming.channel_id] = incoming
            self.emit("connection", incoming)
        elif op == "opened" and channel is not None:
            channel._set_open()
        elif op == "data" and channel is not None:
            channel._deliver(frame.get("payload"))
        elif op == "close" and channel is not None:
            channel._mark_closed()

    # ==================== Endpoint 契约 ====================

    def connect(self, address: str, *, reliable: bool = True,
                serialization: str = "json") -> WebSocketChannel:
        channel = WebSocketChannel(self, uuid.uuid4().hex, address)
        self._channels[channel.channel_id] = channel
        self._post({"op": "connect", "to": address, "channel": channel.channel_id})
        return channel

    def reconnect(self) -> None:
        if self._destroyed or self._ws is not None:
            return
        self._spawn(self._run())

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        for channel in list(self._channels.values()):
            channel._mark_closed()
        if self._ws is not None:
            self._loop.create_task(self._ws.close())
        else:
            for task in list(self._tasks):
                task.cancel()

    def call_later(self, delay: float, callback: Callable[[], None]) -> AsyncioTimer:
        return AsyncioTimer(self._loop.call_later(delay, callback))


class WebSocketTransport(Transport):
    """通过 RelayServer 建立通道的传输层"""

    def __init__(self, url: str | None = None):
        self.url = url or get_config().relay_url

    def open(self, address: str) -> WebSocketEndpoint:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportUnavailableError("WebSocketTransport requires a running event loop") from e
        endpoint = WebSocketEndpoint(self.url, address, loop)
        endpoint.start()
        return endpoint


# ==================== CLI 入口 ====================

def main():
    """命令行启动中继服务"""
    import argparse

    from logging_config import setup_logging

    config = get_config()
    parser = argparse.ArgumentParser(description="roomlink WebSocket 中继服务")
    parser.add_argument("--host", default=config.relay_host, help="监听地址")
    parser.add_argument("--port", type=int, default=config.relay_port, help="监听端口")
    parser.add_argument("-v", "--verbose", action="store_true", help="详细日志")

    args = parser.parse_args()

    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        enable_console=True,
        console_level="DEBUG" if args.verbose else "INFO",
    )

    server = RelayServer(host=args.host, port=args.port)
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
