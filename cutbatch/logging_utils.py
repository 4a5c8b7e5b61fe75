"""Centralised logging configuration helpers."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional

LOGGER_NAME = "cutbatch"
TASK_FIELDS = ("kind", "unit_id", "retry_count")


class ColorFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",  # cyan
        "INFO": "\033[32m",  # green
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",  # red
        "CRITICAL": "\033[35m",  # magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, *, use_color: bool) -> None:
        super().__init__(fmt)
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - colour branch
        message = super().format(record)
        if not self.use_color:
            return message
        color = self.COLORS.get(record.levelname)
        if not color:
            return message
        return f"{color}{message}{self.RESET}"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; task context passed via ``extra`` is kept as fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in TASK_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(
    config: Mapping[str, object],
    *,
    console_level: Optional[str | int] = None,
) -> logging.Logger:
    """Configure the ``cutbatch`` logger tree; ``console_level`` overrides the configured one."""

    resolved_console = _coerce_level(console_level if console_level is not None else config.get("console_level"))
    file_level = _coerce_level(config.get("file_level"))
    json_logs = bool(config.get("json_logs"))
    use_color = bool(config.get("color", True))
    log_dir = config.get("log_dir") or config.get("logs")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Remove previous handlers to avoid duplicates in tests.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(resolved_console)
    console_handler.setFormatter(
        ColorFormatter("%(asctime)s [%(levelname)s] %(message)s", use_color=use_color)
    )
    logger.addHandler(console_handler)

    if log_dir:
        path = Path(str(log_dir))
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path / "cutbatch.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        if json_logs:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            )
        logger.addHandler(file_handler)

    return logger


def _coerce_level(level: object) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        value = getattr(logging, level.upper(), None)
        if isinstance(value, int):
            return value
    return logging.INFO


__all__ = ["JsonFormatter", "LOGGER_NAME", "configure_logging"]
