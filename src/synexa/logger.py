"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL, WARN -> WARNING)

使用：先调用 setup_logging 配置日志，然后 logger.info(...) 等写日志。
投递流程中使用 reminder_logger(reminder_id)，日志行会带上提醒 ID，便于按提醒检索。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL", "FATAL"]

# 未绑定提醒时显示的占位
_NO_REMINDER = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<magenta>r:{extra[reminder_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | r:{extra[reminder_id]} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL", "WARN": "WARNING"}


def _normalize_level(level: Union[str, LogLevel]) -> str:
    return _LEVEL_ALIAS.get(str(level).upper(), str(level).upper())


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    # 投递失败单独落盘，保留更久
    error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")

    rotating = {"format": FILE_FORMAT, "rotation": "10 MB", "compression": "zip", "encoding": "utf-8"}
    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": _normalize_level(console_level),
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            {"sink": log_file, "level": _normalize_level(log_level), "retention": "30 days", **rotating},
            {"sink": error_log_file, "level": "ERROR", "retention": "90 days", **rotating},
        ],
        extra={"reminder_id": _NO_REMINDER},
    )


def reminder_logger(reminder_id: int | None):
    """返回绑定了提醒 ID 的 logger"""
    return logger.bind(reminder_id=reminder_id if reminder_id is not None else _NO_REMINDER)


__all__ = ["setup_logging", "reminder_logger", "logger"]
