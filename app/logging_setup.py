"""Process-wide logging configuration.

Shared by the FastAPI lifespan and the command-line entry point: a
stderr handler (ANSI colours when attached to a terminal) and, when
``LOG_FILE`` is set, a rotating plain-text file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
_DIM = "\033[2m"
_RESET = "\033[0m"

_LOG_FILE_BYTES = 10 * 1024 * 1024
_LOG_FILE_BACKUPS = 3

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


class LineFormatter(logging.Formatter):
    """``<time> <LEVEL> [<logger tail>] <message>``, optionally coloured."""

    def __init__(self, *, color: bool = False, datefmt: str = "%Y-%m-%d %H:%M:%S") -> None:
        super().__init__(datefmt=datefmt)
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, self.datefmt)
        level = f"{record.levelname:<8s}"
        name = f"[{record.name.rsplit('.', 1)[-1][:20]:>20s}]"
        message = record.getMessage()
        if self.color:
            tint = _LEVEL_COLORS.get(record.levelno, "")
            ts, name = f"{_DIM}{ts}{_RESET}", f"{_DIM}{name}{_RESET}"
            level, message = f"{tint}{level}{_RESET}", f"{tint}{message}{_RESET}"
        line = f"{ts} {level} {name} {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", log_file: str = "") -> None:
    """Replace the root handlers.  Unknown level names fall back to INFO."""
    console = logging.StreamHandler(sys.stderr)
    if sys.stderr.isatty():
        console.setFormatter(LineFormatter(color=True, datefmt="%H:%M:%S"))
    else:
        console.setFormatter(LineFormatter())
    handlers: list[logging.Handler] = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=_LOG_FILE_BYTES,
            backupCount=_LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(LineFormatter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
