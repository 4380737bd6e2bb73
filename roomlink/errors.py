"""房间会话异常模块
定义传输层与会话层的各类异常，提供明确的错误类型和信息

注意: 会话协调器不会把这些异常抛出到调用方，
运行期失败统一通过事件回调的 ``error`` 事件上报。
"""

from __future__ import annotations


class RoomLinkError(Exception):
    """异常基类

    所有 roomlink 相关的异常都应该继承此类，
    提供统一的异常处理接口。
    """

    def __init__(self, message: str, details: dict | None = None):
        """初始化异常

        Args:
            message: 错误消息
            details: 额外的错误详情（可选）
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ==================== 传输相关异常 ====================


class TransportError(RoomLinkError):
    """传输层异常

    ``kind`` 与 TransportErrorKind 的取值一致 (如 "network")
    """

    def __init__(self, message: str, kind: str = "other"):
        super().__init__(message, {"kind": kind})
        self.kind = kind


class TransportUnavailableError(TransportError):
    """传输层不可用 (无网络栈 / 无事件循环)"""

    def __init__(self, message: str = "transport unavailable"):
        super().__init__(message, kind="unavailable")


class ChannelClosedError(TransportError):
    """向已关闭 (或尚未打开) 的通道发送消息"""

    def __init__(self, peer: str = ""):
        super().__init__(f"channel to {peer!r} is not open", kind="closed")
        self.peer = peer


# ==================== 房间相关异常 ====================


class RoomFullError(RoomLinkError):
    """房间人数已满"""

    def __init__(self, max_members: int):
        super().__init__("room is full", {"max_members": max_members})
        self.max_members = max_members


class NameTakenError(RoomLinkError):
    """昵称已被房间内其他成员使用"""

    def __init__(self, name: str):
        super().__init__("name already taken", {"name": name})
        self.name = name


class SessionStateError(RoomLinkError):
    """会话状态不允许该操作 (例如对已在使用的会话再次 host/join)"""

    def __init__(self, operation: str, state: str):
        super().__init__(
            f"cannot {operation} in state {state}",
            {"operation": operation, "state": state},
        )
        self.operation = operation
        self.state = state
