"""
Logging setup for the ``wellwell`` command.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where records go and how they look. The console format
gets richer as the level drops:

    WARNING+   message only
    INFO       time, logger name, message
    DEBUG      time, level, logger:line, message

Level precedence is resolved by the caller with ``resolve_level``:
CLI flag, then ``WELLWELL_LOG_LEVEL``, then the settings file, then
WARNING. ``WELLWELL_LOG_FILE`` adds a file handler that always uses
the detailed format.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ENV_LOG_LEVEL = "WELLWELL_LOG_LEVEL"
ENV_LOG_FILE = "WELLWELL_LOG_FILE"
ENV_LOG_FILE_LEVEL = "WELLWELL_LOG_FILE_LEVEL"

DEFAULT_LEVEL = "WARNING"

# (highest level, format, datefmt), checked in order
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d | %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (sys.maxsize, "%(message)s", None),
)

_FILE_FORMAT = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d | %(message)s", "%Y-%m-%d %H:%M:%S")


def resolve_level(*candidates: str | None) -> str:
    """First non-empty level name, or WARNING."""
    for candidate in candidates:
        if candidate:
            return candidate
    return DEFAULT_LEVEL


def parse_level(level: str | None) -> int:
    """Level name to its numeric value. Unknown names mean WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING


def _console_handler(numeric_level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for ceiling, f, d in _CONSOLE_FORMATS if numeric_level <= ceiling)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, numeric_level: int) -> logging.Handler:
    Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(Path(path).expanduser(), encoding="utf-8")
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
    return handler


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers for this process.

    Args:
        level: Console level name.
        log_file: Optional log file path.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = parse_level(level)
    handlers = [_console_handler(console_level)]
    root_level = console_level

    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(root_level)
    logging.raiseExceptions = False
