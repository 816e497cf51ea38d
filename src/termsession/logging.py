"""Logging setup for a session run.

Standard output carries the terminal stream, so console diagnostics go to
stderr. When a log file is configured it receives every record at DEBUG,
including the ``session-event`` transitions, regardless of the console level.
"""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

from termsession.config import DEFAULT_CONFIG_PATH

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
PACKAGE_LOGGER = "termsession"
# aiohttp reports connection and websocket protocol trouble on these
LIBRARY_LOGGERS = ("aiohttp.client", "aiohttp.websocket")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def default_log_path() -> Path:
    return DEFAULT_CONFIG_PATH.parent / "logs" / "termsession.log"


def resolve_level(level: str) -> int:
    return LOG_LEVELS.get(level.strip().upper(), py_logging.INFO)


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    console_level = resolve_level(level)
    formatter = py_logging.Formatter(_FORMAT)

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    handlers: list[py_logging.Handler] = [console]

    transcript = _open_transcript(log_file, formatter) if log_file else None
    if transcript is not None:
        handlers.append(transcript)

    logger = py_logging.getLogger(PACKAGE_LOGGER)
    _install(logger, handlers, py_logging.DEBUG if transcript is not None else console_level)

    library_level = py_logging.DEBUG if console_level == py_logging.DEBUG else py_logging.WARNING
    for name in LIBRARY_LOGGERS:
        _install(py_logging.getLogger(name), handlers, library_level)
    return logger


def _open_transcript(log_file: str | Path, formatter: py_logging.Formatter) -> py_logging.Handler | None:
    log_path = Path(log_file).expanduser().resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        print(f"termsession: log file disabled ({exc})", file=sys.stderr)
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def _install(logger: py_logging.Logger, handlers: list[py_logging.Handler], level: int) -> None:
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
