"""AMEN Ranking — Logging Setup.

Centralized logging configuration with colored console output. All
modules obtain their logger through get_logger() so the console handler
is installed exactly once. A rotating log file is opt-in: it is attached
only when AMEN_RANKING_LOG_DIR is set or enable_file_logging() is called,
so scoring never touches the disk by default.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# ── Constants ─────────────────────────────────────────────
LOG_DIR_ENV_VAR = "AMEN_RANKING_LOG_DIR"
LOG_FILE_NAME = "amen_ranking.log"
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# ── ANSI Color Codes ─────────────────────────────────────
COLORS = {
    "DEBUG": "\033[36m",     # Cyan
    "INFO": "\033[32m",      # Green
    "WARNING": "\033[33m",   # Yellow
    "ERROR": "\033[31m",     # Red
    "CRITICAL": "\033[41m",  # Red background
}
RESET = "\033[0m"

_initialized = False
_console_handler: logging.Handler | None = None
_file_handler: RotatingFileHandler | None = None


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    def format(self, record: logging.LogRecord) -> str:
        color = COLORS.get(record.levelname, "")
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname:<8}{RESET}"
        return super().format(record)


def _setup_logging() -> None:
    """Install the console handler on the package logger.

    Handlers go on the ``amen_ranking`` logger rather than the root logger
    so that host applications embedding the engine keep control of their
    own root configuration. The logger starts at INFO, so DEBUG calls on
    hot scoring paths return before a record is built. Idempotent.
    """
    global _initialized, _console_handler
    if _initialized:
        return

    package_logger = logging.getLogger("amen_ranking")
    package_logger.setLevel(logging.INFO)

    # ── Console Handler ──────────────────────────────────
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(ColoredFormatter(
        fmt="%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    package_logger.addHandler(console_handler)
    _console_handler = console_handler
    _initialized = True

    log_dir = os.environ.get(LOG_DIR_ENV_VAR)
    if log_dir:
        enable_file_logging(log_dir)


def enable_file_logging(log_dir: str | Path) -> RotatingFileHandler | None:
    """Attach the rotating file handler (10 MB × 5) under ``log_dir``.

    Calling it again returns the handler already attached.

    Args:
        log_dir: Directory for amen_ranking.log; created if missing.

    Returns:
        The file handler, or None if the directory cannot be used.
    """
    global _file_handler
    _setup_logging()
    if _file_handler is not None:
        return _file_handler

    package_logger = logging.getLogger("amen_ranking")
    log_dir = Path(log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_dir / LOG_FILE_NAME),
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        package_logger.warning("File logging disabled (%s): %s", log_dir, e)
        return None

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    package_logger.addHandler(file_handler)
    _file_handler = file_handler
    return file_handler


def disable_file_logging() -> None:
    """Detach and close the rotating file handler, if attached."""
    global _file_handler
    if _file_handler is None:
        return
    logging.getLogger("amen_ranking").removeHandler(_file_handler)
    _file_handler.close()
    _file_handler = None


def set_log_level(level: str) -> None:
    """Apply a configured level name (e.g. "DEBUG") to the package logger.

    Args:
        level: Standard logging level name, case-insensitive.

    Raises:
        ValueError: If the level name is not a known logging level.
    """
    _setup_logging()
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    logging.getLogger("amen_ranking").setLevel(numeric)
    if _console_handler is not None:
        _console_handler.setLevel(numeric)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger with the package configuration applied.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Returns:
        A configured logging.Logger instance.
    """
    _setup_logging()
    return logging.getLogger(name)
