"""日志配置

提供统一的日志配置，支持普通文本和结构化 JSON 两种输出格式；
RunLog 在构建期间把全部日志同时写入控制台和工作目录下的 build.log。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于 CI 流水线消费"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def _make_formatter(json_output: bool) -> logging.Formatter:
    return JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时使用 JSON 格式（适用于 CI），否则使用人类可读格式

    说明:
        - 输出到 stderr
        - 自动清理已有 handlers，避免重复输出
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_make_formatter(json_output))
    root.addHandler(handler)


def reset_logging() -> None:
    """清理根日志器上所有已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


class RunLog:
    """单次构建的聚合日志

    进入时在根日志器上追加一个 FileHandler，格式与控制台一致；
    退出时移除并关闭，之后文件才可以被复制或移动。
    每条记录由 logging 同步分发到各 handler，两路输出顺序一致。
    """

    def __init__(self, path: str | Path, json_output: bool = False) -> None:
        self.path = Path(path)
        self._json_output = json_output
        self._handler: logging.FileHandler | None = None

    def __enter__(self) -> RunLog:
        self.attach()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.detach()

    def attach(self) -> None:
        if self._handler is not None:
            return
        handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        handler.setFormatter(_make_formatter(self._json_output))
        root = logging.getLogger()
        handler.setLevel(root.level)
        root.addHandler(handler)
        self._handler = handler

    def detach(self) -> None:
        if self._handler is None:
            return
        logging.getLogger().removeHandler(self._handler)
        self._handler.close()
        self._handler = None
