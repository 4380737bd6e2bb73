"""游戏引擎协作方
会话层只通过 create_snapshot() 与游戏逻辑交互
"""

from .engine import GameEngine, SnapshotEngine

__all__ = ["GameEngine", "SnapshotEngine"]
