# logging.py

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars
from structlog.typing import Processor

from Restorator.config import Settings

DEFAULT_LOG_PATH = "logs/restorator.jsonl"

# Libraries that log every request at INFO; one line per submitted entry is enough
_CHATTY_LOGGERS = ("httpx", "httpcore")


def _handler_level(settings: Settings | None, level_name: str, per_handler: str, legacy: str) -> str:
    lvl_name = getattr(settings, per_handler, None) if settings is not None else None
    if lvl_name is None:
        # Fallback to legacy boolean
        enabled = True if settings is None else getattr(settings, legacy, True)
        lvl_name = level_name if enabled else "NONE"
    return lvl_name.upper()


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    """Render structlog and stdlib records alike, ending in ``renderer``."""
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=[
            structlog.processors.add_log_level,
            merge_contextvars,
        ],
    )


def _console_renderer(settings: Settings | None) -> Processor:
    fmt = settings.logging_console_format if settings is not None else "console"
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def _file_handler(settings: Settings | None) -> RotatingFileHandler:
    path = settings.logging_file_path if settings is not None else DEFAULT_LOG_PATH
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=(settings.logging_max_bytes if settings else 5_000_000),
        backupCount=(settings.logging_backup_count if settings else 5),
    )


def setup_logging(settings: Settings | None = None) -> None:
    """Initialize structlog + stdlib logging for an import run.

    Console output goes to stderr, as key=value lines or JSON depending on
    ``logging_console_format``; the rotating file is always JSON lines.
    """
    level_name = (settings.logging_level if settings else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.captureWarnings(True)

    root_handlers: list[logging.Handler] = []

    console_lvl_name = _handler_level(settings, level_name, "logging_console", "logging_to_console")
    if console_lvl_name != "NONE":
        ch = logging.StreamHandler()
        ch.setLevel(getattr(logging, console_lvl_name, level))
        ch.setFormatter(_formatter(_console_renderer(settings)))
        root_handlers.append(ch)

    file_lvl_name = _handler_level(settings, level_name, "logging_file", "logging_to_file")
    if file_lvl_name != "NONE":
        fh = _file_handler(settings)
        fh.setLevel(getattr(logging, file_lvl_name, level))
        fh.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        root_handlers.append(fh)

    logging.basicConfig(level=level, handlers=root_handlers, force=True)

    for name in _CHATTY_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True
        lg.setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def import_log_context(archive: str, host: str, port: int) -> Iterator[None]:
    """Tag every log line emitted inside the block with the run's archive and target."""
    with bound_contextvars(archive=archive, target=f"{host}:{port}"):
        yield


def describe_settings(settings: Settings) -> dict:
    """Return the settings as a plain dict for a startup log line."""
    return settings.model_dump()
