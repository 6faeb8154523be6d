"""
日志初始化（stdlib logging），CLI 启动时调用一次。

`WARN` 是 `WARNING` 的别名，与命令行 `--log-level` 的取值保持一致。
"""

from __future__ import annotations

import logging
from typing import TextIO

LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str, stream: TextIO | None = None) -> None:
    logging.basicConfig(
        level=LOG_LEVELS.get(level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=stream,
        force=True,
    )
