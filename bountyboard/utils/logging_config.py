"""
Logging Setup
=============
Console output on stderr (uvicorn shares it) plus one file per day under
LOG_DIR. Lifecycle messages start with a bracketed tag such as
"[BOUNTY CLAIMED]" or "[CLAIM RACE]"; the console formatter highlights the
tag so a busy log can be scanned by event.
"""
import logging
import os
import re
import sys
from datetime import datetime

from bountyboard.core.config import LOG_DIR

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# loggers that must reach the root handlers
PROPAGATED_LOGGERS = ("bountyboard", "main", "uvicorn", "uvicorn.error", "uvicorn.access")

_TAG_RE = re.compile(r"^\[[A-Z][A-Z0-9 _-]*\]")


class TaggedConsoleFormatter(logging.Formatter):
    """Colours a record by level and puts its leading [TAG] in bold."""

    LEVEL_COLOURS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    BOLD = "\x1b[1m"
    RESET = "\x1b[0m"

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        colour = self.LEVEL_COLOURS.get(record.levelno)
        if colour is None:
            return line
        message = record.getMessage()
        match = _TAG_RE.match(message)
        if match:
            tag = match.group(0)
            line = line.replace(tag, f"{self.BOLD}{tag}{self.RESET}{colour}", 1)
        return f"{colour}{line}{self.RESET}"


def log_file_path(log_dir: str, day: datetime = None) -> str:
    day = day or datetime.now()
    return os.path.join(log_dir, f"bountyboard_{day.strftime('%Y%m%d')}.log")


def setup_logging(level=logging.INFO, log_dir: str = LOG_DIR, to_file: bool = True):
    """Replace root handlers with the console (and optional daily file) handlers."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(TaggedConsoleFormatter())
    root_logger.addHandler(console_handler)

    if to_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path(log_dir))
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in PROPAGATED_LOGGERS:
        named = logging.getLogger(name)
        named.setLevel(level)
        named.propagate = True

    root_logger.info("[STARTUP] Logging initialised (console%s)", " + file" if to_file else "")
