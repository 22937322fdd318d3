"""Logging setup for dripfeed.

Records at every level go to a rotating log file; the console (stderr, via
Rich) shows records at the level chosen in the [logging] section of
config.ini. Command output on stdout stays free of log lines.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

if TYPE_CHECKING:
    from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(levelname)-8s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Third-party loggers that only matter when something goes wrong.
QUIET_LOGGERS = ("watchdog", "urllib3", "uvicorn.access")

_installed: list[logging.Handler] = []


def _file_handler(path: Path) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _console_handler(level: int) -> RichHandler:
    console = Console(stderr=True, theme=Theme({"logging.level.info": "bold cyan"}))
    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
    )
    handler.setLevel(level)
    return handler


def setup_logging(settings: LoggingConfig) -> None:
    """Attach the file and console handlers to the root logger.

    A later call replaces the handlers installed by an earlier one, so the
    CLI can reconfigure after reading a different config.ini.
    """
    reset_logging()

    handlers: list[logging.Handler] = [_console_handler(settings.numeric_level)]
    if settings.file is not None:
        handlers.append(_file_handler(settings.file))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in handlers:
        root_logger.addHandler(handler)
        _installed.append(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def reset_logging() -> None:
    """Detach and close the handlers added by setup_logging (useful for tests)."""
    root_logger = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root_logger.removeHandler(handler)
        handler.close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the specified module (typically __name__)."""
    return logging.getLogger(name)
