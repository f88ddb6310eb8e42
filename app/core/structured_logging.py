"""
Structured logging for the order sync engine.

structlog renders every record (structlog or plain stdlib loggers) as one
JSON line, or as coloured console output for local runs. Request, correlation
and session ids come from contextvars; per-order context is bound with
``order_context(order_id)`` around a mutation so every line it emits carries
the order id. Dotted ``extra`` keys (``http.method``, ``error.code``) are
copied onto the event.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)

APP_VERSION = "0.3.0"
SERVICE_NAME = "ordersync"

_CONTEXT_VARS = (
    ("request_id", request_id_var),
    ("correlation_id", correlation_id_var),
    ("session_id", session_id_var),
)

NOISY_LOGGERS = ("httpcore", "httpx", "asyncio", "watchfiles", "uvicorn.access")


def _inject_context(logger_name: str, method_name: str, event_dict: dict) -> dict:
    """Stamp service metadata and whichever correlation ids are set."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = APP_VERSION
    for key, var in _CONTEXT_VARS:
        value = var.get(None)
        if value:
            event_dict[key] = value
    return event_dict


def _drop_color_message(logger_name: str, method_name: str, event_dict: dict) -> dict:
    # uvicorn duplicates the message with ANSI codes
    event_dict.pop("color_message", None)
    return event_dict


@contextmanager
def order_context(order_id: str, **extra) -> Iterator[None]:
    """Bind order_id (and any extra keys) to every log line in the block."""
    with structlog.contextvars.bound_contextvars(order_id=order_id, **extra):
        yield


def _renderer(log_format: str):
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "ordersync.jsonl",
    log_level: int | str = logging.INFO,
    log_format: str = "json",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure structlog and the root stdlib logger.

    The console handler uses ``log_format``; the rotating file under
    ``log_dir`` is always JSON lines. Call once at import time of the app.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        _inject_context,
        _drop_color_message,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    def formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level.upper() if isinstance(log_level, str) else log_level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter(_renderer(log_format)))
    root.addHandler(console)

    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        root.warning("File logging disabled (%s), stderr only", e)
    else:
        file_handler.setFormatter(formatter(structlog.processors.JSONRenderer()))
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
