"""
=============================================================================
LOGGING SETUP
=============================================================================

Configures structured logging for the whole process.

structlog is the front end: every module does

    logger = structlog.get_logger(__name__)
    logger.info("started server", addr="127.0.0.1:8080")

and request handlers get a logger that is already bound to the request
(see context.py). The standard library's logging module is the transport:
structlog hands each event to a stdlib logger, and a single root handler
renders it. Records from plain stdlib loggers (third-party code) go
through the same ProcessorFormatter, so every line has the same shape.

=============================================================================
OUTPUT FORMATS
=============================================================================

    json (default, for log aggregators):
    {"log": {...}, "event": "configure_logging", "level": "info",
     "logger": "diagserver.log", "timestamp": "2026-01-01T12:00:00.000Z"}

    text (for humans):
    2026-01-01T12:00:00.000Z [info     ] started server  [diagserver.server] addr=127.0.0.1:8080

=============================================================================
"""

import logging
import os
import sys
from typing import IO, List, Optional

import structlog


logger = structlog.get_logger(__name__)


class LoggingInitError(OSError):
    """Raised when the log destination cannot be opened."""


# Level names accepted on the command line, lowercase for case-insensitive
# lookups. "warn" matches the spelling operators type, not stdlib's WARNING.
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

LOG_TYPES = ("json", "text")

LOG_FILE_MODE = 0o600

_handler: Optional[logging.Handler] = None
_stream: Optional[IO[str]] = None


def log_levels() -> str:
    """Return the valid level names, comma-separated, in severity order."""
    return ", ".join(sorted(LOG_LEVELS, key=LOG_LEVELS.get))


def log_level(name: str) -> int:
    """
    Return the stdlib level for a level name (case-insensitive).

    Raises:
        ValueError: If the name is not one of LOG_LEVELS.
    """
    try:
        return LOG_LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"invalid loglevel: {name}") from None


def _level_name(level: int) -> str:
    for name, value in LOG_LEVELS.items():
        if value == level:
            return name
    return logging.getLevelName(level).lower()


def _open_log_file(filename: str) -> IO[str]:
    # Append-only, created private to the owner; stays open for the process.
    def opener(path, flags):
        return os.open(path, flags | os.O_APPEND | os.O_CREAT, LOG_FILE_MODE)

    try:
        return open(filename, "a", encoding="utf-8", opener=opener)
    except OSError as e:
        raise LoggingInitError(f"configure_logging: {e}") from e


def _shared_processors(add_source: bool) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if add_source:
        processors.append(
            structlog.processors.CallsiteParameterAdder({
                structlog.processors.CallsiteParameter.PATHNAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            })
        )
    return processors


def configure_logging(
    filename: str = "",
    log_type: str = "json",
    level: int = logging.INFO,
    add_source: bool = False,
) -> None:
    """
    Initialize logging for the application.

    Safe to call more than once (tests do): the handler installed by the
    previous call is replaced and its log file closed.

    Args:
        filename: Append to this file; "" writes to stderr.
        log_type: "json" or "text".
        level: stdlib logging level (see log_level()).
        add_source: Add pathname, func_name and lineno to every entry.

    Raises:
        ValueError: If log_type is unknown.
        LoggingInitError: If the log file cannot be opened.
    """
    global _handler, _stream

    if log_type not in LOG_TYPES:
        raise ValueError(f"invalid logtype: {log_type}")

    stream = _open_log_file(filename) if filename else sys.stderr

    shared = _shared_processors(add_source)

    if log_type == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
        _handler.close()
    if _stream is not None:
        _stream.close()

    root.addHandler(handler)
    root.setLevel(level)
    _handler = handler
    _stream = stream if filename else None

    logger.info(
        "configure_logging",
        log={
            "filename": filename,
            "type": log_type,
            "level": _level_name(level),
            "add_source": add_source,
        },
    )
