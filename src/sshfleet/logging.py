"""Logging setup for CLI runs and fleet workers."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

from sshfleet.security import redact_secrets

LOGGER_NAME = "sshfleet"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/sshfleet/logs/sshfleet.log")
_FALLBACK_LOG_PATH = Path(".sshfleet/logs/sshfleet.log")
# Fleet runs interleave hosts; the worker thread name tells them apart.
_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


class RedactingFilter(py_logging.Filter):
    """Mask credentials that slipped into a record before any handler writes it."""

    def filter(self, record: py_logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _absolute(path: str | Path) -> Path:
    try:
        resolved = Path(path).expanduser()
    except RuntimeError:
        resolved = Path(path)
    return resolved if resolved.is_absolute() else resolved.resolve()


def default_log_path() -> Path:
    try:
        return _absolute(DEFAULT_LOG_PATH.expanduser())
    except RuntimeError:
        return _absolute(Path.cwd() / _FALLBACK_LOG_PATH)


def normalize_level(level: str) -> str:
    normalized = level.strip().upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return normalized


def _file_handler(log_file: str | Path, formatter: py_logging.Formatter) -> py_logging.Handler | None:
    log_path = _absolute(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(RedactingFilter())
    return handler


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """Reset the ``sshfleet`` logger to a console handler and an optional debug file.

    Calling it again replaces the previous handlers. Both handlers redact
    credentials. An unwritable log file is skipped silently so the CLI still
    runs.
    """
    resolved = LOG_LEVELS.get(normalize_level(level), py_logging.INFO)
    formatter = py_logging.Formatter(_FORMAT)

    logger = py_logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.setLevel(resolved)

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(formatter)
    console.addFilter(RedactingFilter())
    logger.addHandler(console)

    file_handler = _file_handler(log_file, formatter) if log_file else None
    if file_handler is not None:
        # The file keeps DEBUG detail; the console handler still filters.
        logger.setLevel(py_logging.DEBUG)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
