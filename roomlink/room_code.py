"""房间码与传输地址

房间码为 5 位字符，取自去掉易混淆字形 (I/O/0/1) 的字母表。
房主在 ``前缀 + 房间码`` 下注册传输地址，加入者据此定位房主；
加入者自身使用 ``前缀 + 房间码 + 随机后缀``，仅用于避免地址冲突。
"""

from __future__ import annotations

import random
import string

# 24 个字母 + 8 个数字
ROOM_CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH: int = 5
AMBIGUOUS_GLYPHS: frozenset[str] = frozenset("IO01")

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 6


def generate_room_code(length: int = ROOM_CODE_LENGTH,
                       rng: random.Random | None = None) -> str:
    """均匀随机 (可重复) 生成房间码。不保证唯一，冲突由传输层报告。"""
    rng = rng or random
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code: str) -> str:
    """加入时大小写不敏感"""
    return (code or "").strip().upper()


def is_valid_room_code(code: str, length: int = ROOM_CODE_LENGTH) -> bool:
    return len(code) == length and all(ch in ROOM_CODE_ALPHABET for ch in code)


def host_address(code: str, prefix: str) -> str:
    """房主的确定性传输地址"""
    return f"{prefix}{code}"


def client_address(code: str, prefix: str,
                   rng: random.Random | None = None) -> str:
    """加入者的本地地址: 前缀 + 房间码 + 6 位 base36 随机后缀"""
    rng = rng or random
    suffix = "".join(rng.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}{code}-{suffix}"
