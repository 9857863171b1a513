"""
Project-wide logging setup for nutwatch.

Provides a simple, consistent console logger with optional JSON output.
Controlled via environment variables:
- NUTWATCH_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
- NUTWATCH_LOG_FORMAT: text|json (default: text)
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


def _get_level(default: str = "INFO") -> int:
    level = os.getenv("NUTWATCH_LOG_LEVEL", default).upper()
    return getattr(logging, level, logging.INFO)


def setup_logging(
    force: bool = False,
    *,
    level: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Configure root logging for console output.

    If a handler is already present and force is False, this is a no-op.
    An explicit ``level`` wins over NUTWATCH_LOG_LEVEL.
    """
    target_logger = logger or logging.getLogger()
    if target_logger.handlers and not force:
        return

    if force:
        for h in list(target_logger.handlers):
            target_logger.removeHandler(h)

    target_logger.setLevel(getattr(logging, level.upper(), logging.INFO) if level else _get_level())

    handler = logging.StreamHandler()

    fmt = os.getenv("NUTWATCH_LOG_FORMAT", "text").lower()
    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    handler.setFormatter(formatter)
    target_logger.addHandler(handler)
