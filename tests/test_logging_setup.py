# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tasksync.logging_setup import _ConsoleNoiseFilter, parse_level, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("tasksync.sync.coordinator", logging.DEBUG, True),
        ("tasksync.sync.refresher", logging.INFO, False),
        ("tasksync.sync.refresher", logging.WARNING, True),
        ("httpx", logging.INFO, False),
        ("httpcore.connection", logging.WARNING, True),
        ("py.warnings", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_parse_level() -> None:
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(" Warning ") == logging.WARNING
    assert parse_level("chatty") == logging.INFO
    assert parse_level(logging.ERROR) == logging.ERROR


def test_setup_logging_writes_named_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        path = setup_logging(log_dir=tmp_path / "logs", filename="migrate.log", console_level="warning")
        logging.getLogger("tasksync.test").debug("written to file only")
        for h in root.handlers:
            h.flush()

        assert path == tmp_path / "logs" / "migrate.log"
        assert "written to file only" in path.read_text("utf-8")
        assert len(root.handlers) == 2
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
