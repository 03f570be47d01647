"""Logging setup for the relaydispatch logger tree.

``configure_logging`` is the public entry point applications call once at startup.
"""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "relaydispatch"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def resolve_level(level: str) -> int:
    normalized = level.strip().upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return LOG_LEVELS.get(normalized, py_logging.INFO)


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """Attach a stream handler (and optionally a DEBUG file handler) to ``relaydispatch``.

    Calling this again replaces the handlers installed by a previous call.
    Dispatch attempts, classifications and validation outcomes are logged at
    DEBUG, so a file handler captures them even when the stream level is higher.
    """
    resolved = resolve_level(level)

    logger = py_logging.getLogger(LOGGER_NAME)
    logger.setLevel(py_logging.DEBUG if log_file else resolved)
    logger.handlers.clear()
    formatter = py_logging.Formatter(_FORMAT)

    handler = py_logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_file:
        try:
            log_path = Path(log_file).expanduser()
        except RuntimeError:
            log_path = Path(log_file)
        if not log_path.is_absolute():
            log_path = log_path.resolve()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = py_logging.FileHandler(log_path, encoding="utf-8")
        except OSError:
            logger.warning("Could not open log file %s; logging to stream only", log_path)
        else:
            file_handler.setLevel(py_logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger
