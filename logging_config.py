"""集中式日志配置

进程入口 (如中继服务 CLI) 调用 setup_logging() 统一初始化；
库代码只使用 logging.getLogger(__name__)，从不自行配置 handler。

- 文件输出: RotatingFileHandler, UTF-8
- 控制台输出: 默认关闭，CLI 开启
- 支持文本与 JSON 两种格式
- 幂等: 重复调用不会叠加 handler

环境变量覆盖:
    ROOMLINK_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR
    ROOMLINK_LOG_FILE=path/to/file.log
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = Path("logs") / "roomlink.log"

_FILE_HANDLER_NAME = "roomlink_file"
_CONSOLE_HANDLER_NAME = "roomlink_console"


class JsonFormatter(logging.Formatter):
    """JSON 格式化器，用于结构化日志输出。"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = (level or "").strip().upper()
    value = logging.getLevelName(name) if name else logging.INFO
    return value if isinstance(value, int) else logging.INFO


def _resolve_path(log_file: str | None) -> Path:
    path = Path(log_file) if log_file else DEFAULT_LOG_FILE
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def setup_logging(
    *,
    level: str | int = "INFO",
    log_file: str | None = None,
    enable_file: bool = True,
    enable_console: bool = False,
    console_level: str | int = "WARNING",
    json_format: bool = False,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """初始化根 logger，返回根 logger。

    Args:
        level: 文件日志级别
        log_file: 日志文件路径 (默认 logs/roomlink.log)
        enable_file: 是否写文件
        enable_console: 是否输出到 stderr
        console_level: 控制台日志级别
        json_format: 是否使用 JSON 格式
    """
    level = os.environ.get("ROOMLINK_LOG_LEVEL") or level
    log_file = os.environ.get("ROOMLINK_LOG_FILE") or log_file

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)  # 由各 handler 过滤

    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    existing = {h.name: h for h in root.handlers}

    if enable_file:
        handler = existing.get(_FILE_HANDLER_NAME)
        if handler is None:
            handler = RotatingFileHandler(
                str(_resolve_path(log_file)),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            handler.name = _FILE_HANDLER_NAME
            root.addHandler(handler)
        handler.setFormatter(formatter)
        handler.setLevel(_parse_level(level))

    if enable_console:
        handler = existing.get(_CONSOLE_HANDLER_NAME)
        if handler is None:
            handler = logging.StreamHandler(sys.stderr)
            handler.name = _CONSOLE_HANDLER_NAME
            root.addHandler(handler)
        handler.setFormatter(formatter)
        handler.setLevel(_parse_level(console_level))

    # 降低第三方库噪音
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "日志已初始化 | level=%s file=%s console=%s", level, log_file or DEFAULT_LOG_FILE, enable_console,
    )
    return root
