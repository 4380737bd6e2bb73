"""房间成员簿记 (仅房主持有)

成员列表按加入顺序排列，下标 0 永远是房主且在房间存在期间不会被移除。
成员表把每个已完成握手的昵称映射到唯一一条通道；房主本人没有通道。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .errors import NameTakenError, RoomFullError
from .transport import Channel

logger = logging.getLogger(__name__)

MAX_MEMBERS: int = 8


@dataclass
class Room:
    """房主侧的房间视图"""
    code: str
    host_name: str
    max_members: int = MAX_MEMBERS
    members: list[str] = field(default_factory=list)
    # 昵称 → 通道 (不含房主)
    channels: dict[str, Channel] = field(default_factory=dict)
    # 已连上但尚未发送 join 的通道
    pending: list[Channel] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.members:
            self.members = [self.host_name]

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return self.member_count >= self.max_members

    def snapshot(self) -> list[str]:
        """完整成员快照 (副本)"""
        return list(self.members)

    def add_pending(self, channel: Channel) -> None:
        if channel not in self.pending:
            self.pending.append(channel)

    def discard_pending(self, channel: Channel) -> bool:
        if channel in self.pending:
            self.pending.remove(channel)
            return True
        return False

    def name_of(self, channel: Channel) -> str | None:
        """按通道反查昵称 (最多 8 人，线性扫描即可)"""
        for name, c in self.channels.items():
            if c is channel:
                return name
        return None

    def channel_for(self, name: str) -> Channel | None:
        return self.channels.get(name)

    def live_channels(self) -> list[Channel]:
        return list(self.channels.values())

    def admit(self, name: str, channel: Channel) -> list[str]:
        """登记新成员，返回新的成员快照

        Raises:
            RoomFullError: 已达人数上限
            NameTakenError: 昵称已被使用 (含房主)
        """
        if self.is_full:
            raise RoomFullError(self.max_members)
        if name in self.members:
            raise NameTakenError(name)
        self.discard_pending(channel)
        self.channels[name] = channel
        self.members.append(name)
        logger.info(f"房间 {self.code}: {name} 加入 ({self.member_count}/{self.max_members})")
        return self.snapshot()

    def remove_channel(self, channel: Channel) -> str | None:
        """移除该通道对应的成员，返回其昵称；通道未完成握手则返回 None"""
        self.discard_pending(channel)
        name = self.name_of(channel)
        if name is None:
            return None
        del self.channels[name]
        self.members.remove(name)
        logger.info(f"房间 {self.code}: {name} 离开 ({self.member_count}/{self.max_members})")
        return name

    def clear(self) -> None:
        self.channels.clear()
        self.pending.clear()
