"""房间会话配置中心 (SSOT - 单一事实来源)

所有可配置的会话参数应在此定义，支持从环境变量覆盖。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _get_env_float(key: str, default: float) -> float:
    """从环境变量获取浮点数配置"""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_env_int(key: str, default: int) -> int:
    """从环境变量获取整数配置"""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


@dataclass(frozen=True)
class RoomConfig:
    """会话配置类 (不可变)

    所有可调配置项支持通过环境变量覆盖：
    - ROOMLINK_ADDRESS_PREFIX: 传输地址前缀
    - ROOMLINK_JOIN_TIMEOUT: 加入房间等待通道打开的秒数
    - ROOMLINK_MAX_RECONNECT: 房主传输断开后的自动重连上限
    - ROOMLINK_RELAY_URL: 中继服务地址 (WebSocketTransport)
    """
    # ==================== 房间规模 (固定) ====================
    max_members: int = 8
    room_code_length: int = 5

    # ==================== 地址与超时 ====================
    address_prefix: str = field(
        default_factory=lambda: os.environ.get("ROOMLINK_ADDRESS_PREFIX", "room-")
    )
    join_timeout: float = field(
        default_factory=lambda: _get_env_float("ROOMLINK_JOIN_TIMEOUT", 15.0)
    )
    max_reconnect_attempts: int = field(
        default_factory=lambda: _get_env_int("ROOMLINK_MAX_RECONNECT", 3)
    )

    # ==================== 中继服务 ====================
    relay_url: str = field(
        default_factory=lambda: os.environ.get("ROOMLINK_RELAY_URL", "ws://localhost:9000")
    )
    relay_host: str = field(
        default_factory=lambda: os.environ.get("ROOMLINK_RELAY_HOST", "0.0.0.0")
    )
    relay_port: int = field(
        default_factory=lambda: _get_env_int("ROOMLINK_RELAY_PORT", 9000)
    )
    # WebSocket 消息体最大字节数
    max_message_size: int = field(
        default_factory=lambda: _get_env_int("ROOMLINK_MAX_MESSAGE_SIZE", 1_048_576)
    )

    # ==================== 日志 ====================
    log_level: str = field(
        default_factory=lambda: os.environ.get("ROOMLINK_LOG_LEVEL", "INFO")
    )

    @classmethod
    def from_env(cls) -> RoomConfig:
        """从环境变量创建配置实例"""
        return cls()


_config: RoomConfig | None = None


def get_config() -> RoomConfig:
    """获取全局配置实例（懒加载）"""
    global _config
    if _config is None:
        _config = RoomConfig.from_env()
    return _config


def reset_config() -> None:
    """重置配置（用于测试）"""
    global _config
    _config = None
