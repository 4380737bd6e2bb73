"""房间会话协调器

一个 RoomSession 对应一个进程内的房间会话 (房主或加入者)，
显式构造、显式 destroy()，不存在全局单例。

功能:
- 房间生命周期 (创建 / 加入 / 开始 / 销毁)
- 成员簿记 (仅房主)
- 消息路由: 房主 ⇄ 加入者 单发，房主 → 全体 广播
- 断线处理: 成员离开广播、加入超时、房主传输断开后有限次重连

所有逻辑运行在传输层回调所在的同一执行线程上，没有内部并发。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from game.engine import GameEngine, SnapshotEngine
from i18n import t as _t

from .config import RoomConfig, get_config
from .errors import ChannelClosedError, SessionStateError, TransportUnavailableError
from .events import EventDispatcher, EventSink, RoomEvent
from .membership import Room
from .models import is_valid_player_name
from .protocol import Action, Chat, GameStart, Join, StateUpdate, WireMessage
from .room_code import (
    client_address,
    generate_room_code,
    host_address,
    is_valid_room_code,
    normalize_room_code,
)
from .router import MessageRouter
from .transport import Channel, Endpoint, Timer, Transport, TransportErrorKind

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """会话状态"""
    IDLE = "idle"
    HOSTING_WAITING = "hosting-waiting"     # 房主: 等待玩家加入
    HOSTING_ACTIVE = "hosting-active"       # 房主: 游戏已开始
    JOINING = "joining"                     # 加入者: 等待握手完成
    JOINED_ACTIVE = "joined-active"         # 加入者: 已在房间内
    TERMINATED = "terminated"


@dataclass
class ReconnectPolicy:
    """房主传输断开 (disconnected) 后的自动重连计数

    attempts 只在重连后再次成功注册时清零。
    """
    cap: int = 3
    attempts: int = 0

    def next_attempt(self) -> bool:
        """还能重连则计数 +1 并返回 True"""
        if self.attempts >= self.cap:
            return False
        self.attempts += 1
        return True

    def reset(self) -> None:
        self.attempts = 0


class RoomSession:
    """房主权威的房间会话

    Args:
        transport: 传输层 (LoopbackTransport / WebSocketTransport)
        engine: 游戏引擎协作方，仅房主 start_game() 时使用
        config: 会话配置，默认取全局配置
    """

    def __init__(self, transport: Transport, engine: GameEngine | None = None,
                 config: RoomConfig | None = None):
        self._transport = transport
        self._engine: GameEngine = engine or SnapshotEngine()
        self._config = config or get_config()
        self._state = SessionState.IDLE
        self._router = MessageRouter(self)
        self._reconnect = ReconnectPolicy(cap=self._config.max_reconnect_attempts)

        self.events = EventDispatcher()
        self.is_host: bool = False
        self.room_code: str = ""
        self.player_name: str = ""
        self.room: Room | None = None          # 仅房主
        self._local_player_id: Any = None

        self._endpoint: Endpoint | None = None
        self._host_channel: Channel | None = None   # 仅加入者
        self._pending_channel: Channel | None = None
        self._join_timer: Timer | None = None
        self._announced = False

    # ==================== 只读属性 ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state is SessionState.TERMINATED

    @property
    def players(self) -> list[str]:
        """房主侧的成员快照；加入者侧返回空列表 (以事件中的快照为准)"""
        return self.room.snapshot() if self.room else []

    @property
    def local_player_id(self) -> Any:
        return self._local_player_id

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    def _require_idle(self, operation: str) -> None:
        if self._state is not SessionState.IDLE:
            raise SessionStateError(operation, self._state.value)

    # ==================== 房主 ====================

    def host(self, name: str, sink: EventSink) -> str:
        """创建房间并开始监听，返回房间码

        注册结果通过 room-created / error 事件报告。昵称不合法时上报 error，
        会话进入 terminated 并返回空字符串。

        Raises:
            SessionStateError: 会话已被使用 (非 idle)，属于调用方编程错误
        """
        self._require_idle("host")
        self.is_host = True
        self.player_name = name
        self.events = EventDispatcher(sink)
        if not is_valid_player_name(name):
            logger.info(f"房主昵称不合法: {name!r}")
            self._fail(_t("error.invalid_name"))
            return ""
        self.room_code = generate_room_code(self._config.room_code_length)
        self.room = Room(code=self.room_code, host_name=name,
                         max_members=self._config.max_members)
        self._state = SessionState.HOSTING_WAITING

        address = host_address(self.room_code, self._config.address_prefix)
        try:
            endpoint = self._transport.open(address)
        except TransportUnavailableError as e:
            logger.error(f"传输层不可用: {e}")
            self._fail(_t("error.transport_unavailable"))
            return self.room_code

        self._endpoint = endpoint
        endpoint.on("open", self._on_host_open)
        endpoint.on("connection", self._on_host_connection)
        endpoint.on("error", self._on_host_error)
        endpoint.on("disconnected", self._on_host_disconnected)
        logger.info(f"房间 {self.room_code} 创建中 (房主: {name}, 地址: {address})")
        return self.room_code

    def _on_host_open(self, assigned_id: str) -> None:
        if self.terminated:
            return
        if self._reconnect.attempts:
            logger.info(f"重连成功 (第 {self._reconnect.attempts} 次尝试)")
            self._reconnect.reset()
        if self._announced:
            return
        self._announced = True
        logger.info(f"房主已注册: {assigned_id}")
        self.events.notify(RoomEvent.ROOM_CREATED, {"code": self.room_code})

    def _on_host_connection(self, channel: Channel) -> None:
        if self.terminated:
            return
        logger.info(f"新连接: {channel.peer}")
        self.room.add_pending(channel)

        def on_open() -> None:
            channel.on("data", lambda raw: self._router.handle_host_message(channel, raw))

        channel.on("open", on_open)
        channel.on("close", lambda: self._router.handle_disconnect(channel))
        channel.on("error", lambda err: self._on_member_channel_error(channel, err))

    def _on_member_channel_error(self, channel: Channel, err: Any) -> None:
        if self.terminated:
            return
        logger.warning(f"通道错误 ({channel.peer}): {err}")
        if self.room.discard_pending(channel):
            logger.debug(f"丢弃未完成握手的连接: {channel.peer}")

    def _on_host_error(self, kind: str) -> None:
        if self.terminated:
            return
        logger.error(f"房主传输错误: {kind}")
        if kind == TransportErrorKind.UNAVAILABLE_ID.value:
            message = _t("error.room_code_in_use")
        elif kind == TransportErrorKind.NETWORK.value:
            message = _t("error.network")
        elif kind == TransportErrorKind.SERVER_ERROR.value:
            message = _t("error.server")
        else:
            message = _t("error.transport", kind=kind)
        self.events.error(message)

    def _on_host_disconnected(self) -> None:
        if self.terminated or self._endpoint is None:
            return
        if self._reconnect.next_attempt():
            logger.info(
                f"传输断开，尝试重连 ({self._reconnect.attempts}/{self._reconnect.cap})"
            )
            self._endpoint.reconnect()
        else:
            logger.info("传输断开，已达重连上限，放弃重连")

    def start_game(self) -> None:
        """房主开始游戏: 生成状态快照并向每个成员发送其玩家 ID"""
        if not self.is_host:
            logger.debug("start_game 仅房主可用，已忽略")
            return
        if self._state not in (SessionState.HOSTING_WAITING, SessionState.HOSTING_ACTIVE):
            return

        names = self.room.snapshot()
        try:
            state = self._engine.create_snapshot(names)
            players = state["players"]
            if len(players) != len(names):
                raise ValueError(f"snapshot has {len(players)} players, expected {len(names)}")
            ids = [p["id"] for p in players]
        except Exception as e:
            logger.exception(f"生成游戏状态失败: {e}")
            self.events.error(_t("error.game_start_failed"))
            return

        self._state = SessionState.HOSTING_ACTIVE
        self._local_player_id = ids[0]
        for name, player_id in zip(names[1:], ids[1:]):
            channel = self.room.channel_for(name)
            if channel is not None:
                self.send(channel, GameStart(state=state, local_id=player_id))
        logger.info(f"房间 {self.room_code} 游戏开始 ({len(names)} 人)")
        self.events.notify(RoomEvent.GAME_START, {"state": state, "localId": ids[0]})

    def broadcast_state(self, state: Any) -> None:
        """房主向所有成员同步状态"""
        if not self.is_host or self.terminated:
            return
        self.broadcast(StateUpdate(state=state))

    # ==================== 加入者 ====================

    def join(self, name: str, code: str, sink: EventSink) -> None:
        """加入房间。结果通过 joined / error 事件报告。

        Raises:
            SessionStateError: 会话已被使用 (非 idle)，属于调用方编程错误
        """
        self._require_idle("join")
        self.is_host = False
        self.player_name = name
        self.events = EventDispatcher(sink)
        self.room_code = normalize_room_code(code)
        self._state = SessionState.JOINING

        if not is_valid_player_name(name):
            logger.info(f"昵称不合法: {name!r}")
            self._fail(_t("error.invalid_name"))
            return

        if not is_valid_room_code(self.room_code, self._config.room_code_length):
            logger.info(f"房间码格式无效: {code!r}")
            self._fail(_t("error.room_not_found"))
            return

        address = client_address(self.room_code, self._config.address_prefix)
        try:
            endpoint = self._transport.open(address)
        except TransportUnavailableError as e:
            logger.error(f"传输层不可用: {e}")
            self._fail(_t("error.transport_unavailable"))
            return

        self._endpoint = endpoint
        endpoint.on("open", self._on_client_open)
        endpoint.on("error", self._on_client_error)
        logger.info(f"{name} 正在加入房间 {self.room_code}")

    def _on_client_open(self, assigned_id: str) -> None:
        if self.terminated or self._host_channel is not None or self._pending_channel is not None:
            return
        target = host_address(self.room_code, self._config.address_prefix)
        logger.info(f"客户端已注册 {assigned_id}，连接房主 {target}")
        channel = self._endpoint.connect(target, reliable=True, serialization="json")
        self._pending_channel = channel
        self._join_timer = self._endpoint.call_later(self._config.join_timeout, self._on_join_timeout)

        channel.on("open", lambda: self._on_host_channel_open(channel))
        channel.on("data", self._router.handle_client_message)
        channel.on("close", self._on_host_channel_close)
        channel.on("error", self._on_host_channel_error)

    def _on_host_channel_open(self, channel: Channel) -> None:
        self._cancel_join_timer()
        if self.terminated:
            return
        logger.info("已连接到房主")
        self._pending_channel = None
        self._host_channel = channel
        self.send(channel, Join(name=self.player_name))

    def _on_join_timeout(self) -> None:
        self._join_timer = None
        if self.terminated or self._host_channel is not None:
            return
        logger.warning(f"加入房间 {self.room_code} 超时 ({self._config.join_timeout}s)")
        self._fail(_t("error.join_timeout"))

    def _on_host_channel_close(self) -> None:
        self._cancel_join_timer()
        if self.terminated:
            return
        logger.warning("与房主的连接已关闭")
        self._fail(_t("error.host_lost"))

    def _on_host_channel_error(self, err: Any) -> None:
        self._cancel_join_timer()
        if self.terminated:
            return
        logger.warning(f"通道错误: {err}")
        self.events.error(_t("error.channel", detail=str(err)))

    def _on_client_error(self, kind: str) -> None:
        if self.terminated:
            return
        logger.error(f"客户端传输错误: {kind}")
        if kind == TransportErrorKind.PEER_UNAVAILABLE.value:
            # 房间不存在是确定结果，不必再等超时
            self._cancel_join_timer()
            message = _t("error.room_not_found")
        elif kind == TransportErrorKind.NETWORK.value:
            message = _t("error.network")
        else:
            message = _t("error.join_failed", kind=kind)
        self.events.error(message)

    def _mark_joined(self) -> None:
        if self._state is SessionState.JOINING:
            self._state = SessionState.JOINED_ACTIVE

    def _set_local_player_id(self, player_id: Any) -> None:
        self._local_player_id = player_id

    # ==================== 双方通用 ====================

    def send_action(self, payload: Any) -> None:
        """加入者把操作发给房主；房主自行在本地处理，此处为空操作"""
        if self.is_host or self._host_channel is None or self.terminated:
            return
        self.send(self._host_channel, Action(payload=payload))

    def send_chat(self, fields: Mapping[str, Any]) -> None:
        """发送聊天。房主广播并通知自己；加入者只发给房主，等待回显。

        fields 必须是映射 (如 {"from": ..., "text": ...})，否则上报 error 并丢弃。
        """
        if self.terminated:
            return
        if not isinstance(fields, Mapping):
            logger.warning(f"聊天内容必须是映射，收到 {type(fields).__name__}，已丢弃")
            self.events.error(_t("error.invalid_chat"))
            return
        msg = Chat(fields=dict(fields))
        if self.is_host:
            self.broadcast(msg)
            self.events.notify(RoomEvent.CHAT, dict(msg.fields))
        elif self._host_channel is not None:
            self.send(self._host_channel, msg)

    def send(self, channel: Channel, msg: WireMessage) -> bool:
        """向单条通道发送；失败只记日志，不影响其他通道"""
        try:
            channel.send(msg.to_wire())
            return True
        except ChannelClosedError:
            logger.warning(f"通道已关闭，丢弃 {msg.type.value} → {channel.peer}")
        except Exception as e:
            logger.warning(f"发送消息失败 ({channel.peer}): {e}")
        return False

    def broadcast(self, msg: WireMessage) -> None:
        """房主向所有成员通道广播"""
        if self.room is None:
            return
        for channel in self.room.live_channels():
            self.send(channel, msg)

    # ==================== 销毁 ====================

    def destroy(self) -> None:
        """释放传输与所有通道；幂等"""
        released = self._endpoint is not None
        self._state = SessionState.TERMINATED
        self._teardown()
        self.events.detach()
        if released:
            logger.info(f"会话已销毁 (房间 {self.room_code or '-'})")

    def _fail(self, message: str) -> None:
        """致命失败: 上报错误后进入 terminated"""
        self.events.error(message)
        self._state = SessionState.TERMINATED
        self._teardown()

    def _teardown(self) -> None:
        self._cancel_join_timer()
        endpoint, self._endpoint = self._endpoint, None
        self._host_channel = None
        self._pending_channel = None
        if self.room is not None:
            self.room.clear()
        if endpoint is not None:
            try:
                endpoint.destroy()
            except Exception as e:
                logger.warning(f"释放传输失败: {e}")

    def _cancel_join_timer(self) -> None:
        timer, self._join_timer = self._join_timer, None
        if timer is not None:
            timer.cancel()
