"""
Logging setup for the replicator.

Progress lines go to stderr so stdout only carries the run summary table.
An optional log file always receives DEBUG output, which includes every
fetch with its watermark and duration.
"""

import logging
import os
import sys
from pathlib import Path
from typing import IO, Iterable

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
CONSOLE_DATEFMT = "%H:%M:%S"
FILE_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Driver chatter only matters when it is a problem
NOISY_LOGGERS = ("sqlalchemy", "pymysql", "psycopg2")

_RESET = "\033[0m"
_DIM = "\033[2m"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name and dims the logger name.

    The record is restored after formatting, so a file handler sharing
    it still writes plain text.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2;37m",
        logging.INFO: "\033[36m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;37;41m",
    }

    def __init__(self, fmt: str, datefmt: str | None = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        levelname, name = record.levelname, record.name
        color = self.LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{color}{levelname:8}{_RESET}"
        record.name = f"{_DIM}{name}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


def _wants_color(stream: IO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def _console_handler(level: int, stream: IO) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, CONSOLE_DATEFMT, use_colors=_wants_color(stream)))
    handler.setLevel(level)
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATEFMT))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_file: str | None = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure the root logger once per process.

    Args:
        level: Console level (DEBUG with --verbose, INFO otherwise)
        log_file: Optional log file, always written at DEBUG
        quiet: Library loggers capped at WARNING
    """
    handlers = [_console_handler(level, sys.stderr)]
    if log_file:
        handlers.append(_file_handler(log_file))

    # Root captures everything; each handler applies its own level
    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug("Console log level: %s", logging.getLevelName(level))
    if log_file:
        logger.debug("Log file: %s", log_file)
