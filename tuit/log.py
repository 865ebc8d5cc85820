"""Loguru sinks for the app.

The terminal is owned by the UI, so nothing logs to stderr unless ``TUIT_LOG``
asks for it. Normal runs log to a rotating file; incognito runs log nowhere.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path

from loguru import logger

from .runtime.config import LOG_DIR, AppConfig

LOG_ENV_VAR = "TUIT_LOG"
LOG_FILE_NAME = "tuit_{time:YYYY-MM-DD}.log"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name} | {name}:{function}:{line} - {message}"
CONSOLE_FORMAT = "<level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"


def setup_logging(
    config: AppConfig,
    env: Mapping[str, str] | None = None,
    log_dir: Path | None = None,
) -> Path | None:
    """Install sinks for this run and return the log file path, if any."""
    environ = os.environ if env is None else env
    logger.remove()

    level = environ.get(LOG_ENV_VAR, "").strip().upper()
    if level:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True, enqueue=True)
        return None
    if config.is_incognito:
        return None

    directory = LOG_DIR if log_dir is None else log_dir
    log_path = directory / LOG_FILE_NAME
    try:
        directory.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level="INFO",
            format=FILE_FORMAT,
            rotation="1 day",
            retention="7 days",
            enqueue=True,
            encoding="utf-8",
        )
    except (OSError, ValueError) as exc:
        # No sink is installed yet, so report on stderr before the UI starts.
        print(f"tuit: file logging disabled: {exc}", file=sys.stderr)
        return None
    logger.info("logging to {}", log_path)
    return log_path


__all__ = ["LOG_ENV_VAR", "setup_logging"]
