"""Logging setup.

All modules log through loguru's ``logger``.  ``setup_logging`` installs
the sinks, routes stdlib logging (uvicorn, asyncio) into loguru and
masks credentials before anything is written.
"""
from __future__ import annotations

import logging
import re
import sys
from typing import Any

from loguru import logger

_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<lvl>{level:<8}</lvl> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<lvl>{message}</lvl>"
)

SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Session tokens: keep a short prefix for correlation
    (re.compile(r"\b([0-9a-f]{8})[0-9a-f]{24,}\b"), r"\1…"),
    (
        re.compile(r"(sessionToken\s*[:=]\s*['\"]?)([^;'\"\s]+)", re.IGNORECASE),
        r"\1***REDACTED***",
    ),
    (
        re.compile(r"(password(?:_hash)?\s*[:=]\s*['\"]?)([^,;'\"\s]+)", re.IGNORECASE),
        r"\1***REDACTED***",
    ),
    # Email addresses (local part masked)
    (re.compile(r"[a-zA-Z0-9._%+-]+@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"), r"***@\1"),
]


def redact(message: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _redact_record(record: dict[str, Any]) -> bool:
    record["message"] = redact(record["message"])
    return True


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    level = level.upper()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=_FMT,
        filter=_redact_record,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )
    if log_file:
        logger.add(
            log_file,
            level=level,
            format=_FMT,
            filter=_redact_record,
            colorize=False,
            backtrace=False,
            diagnose=False,
            enqueue=True,
            encoding="utf-8",
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


__all__ = ["logger", "redact", "setup_logging"]
