"""
Structured logging for the release engine.

Console output goes to stderr because stdout carries the CLI's JSON result.
Features:
- Optional rolling JSONL log file for CI log collection
- Structured context binding per trigger (trigger type, issue, branch)
- Plain or JSON console rendering
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from release_engine.config import get_config

if TYPE_CHECKING:
    from structlog.types import Processor

SERVICE_NAME = "release-engine"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5


class JSONLRotatingHandler(RotatingFileHandler):
    """Rotating file handler writing one JSON object per line."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        encoding: str = "utf-8",
    ):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            filename=str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding=encoding,
        )


def _add_service_info(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict["service"] = SERVICE_NAME
    event_dict["pid"] = os.getpid()
    return event_dict


def _add_timestamp_utc(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _format_exception(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Render exceptions as structured data; engine errors keep their code."""
    exc_info = event_dict.pop("exception", None)
    if exc_info:
        details: dict[str, Any] = {
            "type": type(exc_info).__name__,
            "message": str(exc_info),
        }
        code = getattr(exc_info, "error_code", None)
        if code is not None:
            details["error_code"] = getattr(code, "value", code)
        event_dict["exception"] = details
    return event_dict


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    log_file: str | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    enable_console: bool = True,
    stream: Any = None,
) -> None:
    """
    Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to config value.
        format: Console format (json, plain). Defaults to config value.
        log_file: JSONL file path; None falls back to config, which may disable it.
        max_bytes: Maximum size per log file before rotation.
        backup_count: Number of rotated files to keep.
        enable_console: Whether to log to the console stream.
        stream: Console stream, stderr by default.
    """
    config = get_config()

    level = level or config.logging.level
    format = format or config.logging.format
    log_file = log_file or config.logging.file
    max_bytes = max_bytes or config.logging.max_bytes
    backup_count = backup_count or config.logging.backup_count

    log_level = getattr(logging, level.upper(), logging.INFO)

    jsonl_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_timestamp_utc,
        _add_service_info,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        _format_exception,
        structlog.processors.UnicodeDecoder(),
    ]

    console_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *jsonl_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = []

    if log_file:
        jsonl_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=jsonl_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
        file_handler = JSONLRotatingHandler(
            filename=log_file,
            max_bytes=max_bytes,
            backup_count=backup_count,
        )
        file_handler.setFormatter(jsonl_formatter)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    if enable_console:
        if format.lower() == "json":
            console_renderer: Processor = structlog.processors.JSONRenderer()
        else:
            console_renderer = structlog.dev.ConsoleRenderer(
                colors=False,
                exception_formatter=structlog.dev.plain_traceback,
            )

        console_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=console_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                console_renderer,
            ],
        )
        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(log_level)

    for lib in ["urllib3", "asyncio"]:
        logging.getLogger(lib).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("tag_minted", tag="v2.0.0", sha="abc1234")
    """
    return structlog.get_logger(name)


@contextmanager
def trigger_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind trigger fields for the duration of one trigger run.

    Example:
        with trigger_context(trigger="pull_request_merged", head="release/2.0.0"):
            logger.info("transition_planned")
    """
    with structlog.contextvars.bound_contextvars(
        **{k: v for k, v in kwargs.items() if v is not None}
    ):
        yield
