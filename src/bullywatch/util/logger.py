"""
Logging setup for BullyWatch.

Every module asks for ``get_logger("<module>")`` and receives a child of the
``bullywatch`` package logger. Handlers live only on the package logger:

- console output through prompt_toolkit (colored when stderr is a TTY),
  at ``BULLYWATCH_LOG_LEVEL`` (default INFO);
- one rotating file per session under ``BULLYWATCH_LOG_DIR`` (default
  ``./logs``), at DEBUG.

The package logger does not propagate to the root logger, so a host
application's own logging configuration is left alone.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

ROOT_LOGGER_NAME = "bullywatch"

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H-%M-%S"

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5
SESSION_REUSE_SECONDS = 60

# Third-party loggers that would otherwise echo request payloads or SQL.
NOISY_LOGGERS = ("openai", "openai._base_client", "httpx", "httpcore", "aiosqlite")

_session_log_file: Path | None = None


class ColorFormatter(logging.Formatter):
    """Wraps each formatted record in the ANSI color of its level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Writes records with ``print_formatted_text`` so log lines do not tear an
    active prompt when the pipeline runs inside an interactive host.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def console_level() -> int:
    """Console level from ``BULLYWATCH_LOG_LEVEL``; unknown names fall back to INFO."""
    name = os.environ.get("BULLYWATCH_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def logs_dir() -> Path:
    return Path(os.environ.get("BULLYWATCH_LOG_DIR", "./logs")).resolve()


def session_log_file() -> Path:
    """
    Path of the log file shared by every logger in this process.

    A file from today that was written in the last minute is reused, so a
    quick restart keeps appending to the same file.
    """
    global _session_log_file
    if _session_log_file is not None:
        return _session_log_file

    directory = logs_dir()
    directory.mkdir(parents=True, exist_ok=True)
    now = datetime.now()
    recent = [
        p for p in directory.glob(f"{now:%Y-%m-%d}*.log")
        if now.timestamp() - p.stat().st_mtime < SESSION_REUSE_SECONDS
    ]
    if recent:
        _session_log_file = max(recent, key=lambda p: p.stat().st_mtime)
    else:
        _session_log_file = directory / f"{now.strftime(DATE_FORMAT)}.log"
    return _session_log_file


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root
    root.setLevel(logging.DEBUG)
    root.propagate = False

    plain = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = PromptToolkitHandler()
    console.setLevel(console_level())
    console.setFormatter(ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain)
    root.addHandler(console)

    try:
        file_handler = RotatingFileHandler(
            session_log_file(), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
    except OSError as exc:
        root.warning("[LOGGER] File logging disabled, cannot open log file: %s", exc)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(plain)
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
    return root


def get_logger(logger_name: str) -> logging.Logger:
    """Return the ``bullywatch.<logger_name>`` logger, configuring handlers on first use."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{logger_name}")
