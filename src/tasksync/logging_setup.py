# src/tasksync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console rules:
    - tasksync logs pass, except the background refresher below WARNING
    - httpx/httpcore pass from WARNING
    - anything else (including py.warnings) only from ERROR
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("tasksync.sync.refresher"):
            return record.levelno >= logging.WARNING
        if name.startswith("tasksync."):
            return True
        if name.startswith(("httpx", "httpcore")):
            return record.levelno >= logging.WARNING
        return record.levelno >= logging.ERROR


def parse_level(level: str | int, default: int = logging.INFO) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasksync",
    filename: str = "tasksync.log",
    console_level: str | int = logging.INFO,
    file_level: str | int = logging.DEBUG,
) -> Path:
    """Filtered console on stderr plus a full log file under `log_dir`. Returns the file path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / filename

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(parse_level(console_level))
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(parse_level(file_level, logging.DEBUG))
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file
