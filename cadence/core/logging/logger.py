"""
Cadence Logging Subsystem

Purpose
-------
Structured, non-blocking logging for every Cadence component. Records are
handed to a bounded queue on the emitting task and written by a background
listener thread, so progression updates never wait on console or file I/O.

Responsibilities
----------------
- Configure the root logger once per process (``setup_logging``).
- Stamp each record with the active operation context: user_id, guild_id,
  operation, component, correlation_id.
- Render records as JSON (production, aggregation) or as readable text,
  coloured when attached to a terminal.
- Optionally keep a daily rotating JSON file under ``Config.LOGS_DIR``.
- Expose ``get_logger``, ``LogContext``, ``set_log_context`` /
  ``clear_log_context`` and ``get_logging_health``.

Design Notes
------------
- Context lives in a ContextVar, so concurrent asyncio tasks never see
  each other's user or correlation id.
- The context filter runs on the queue handler; by the time the listener
  thread formats a record the ContextVar belongs to another task.
- ``extra={...}`` fields are carried through to the JSON ``extra`` object.
  Keys that collide with LogRecord attributes (``message``, ``name``,
  ``module``...) are rejected by the stdlib and must not be used.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from cadence.core.config.config import Config

CONTEXT_FIELDS = ("user_id", "guild_id", "correlation_id", "component", "operation")
_UNSET = "N/A"

_operation_context: ContextVar[Dict[str, Any]] = ContextVar("cadence_log_context", default={})


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class LogSettings:
    environment: str
    level: int
    json_output: bool
    colors: bool
    to_file: bool
    logs_dir: Path

    text_format: str = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_name: str = "cadence.json.log"
    file_backups: int = 1
    queue_size: int = 10_000

    @classmethod
    def from_config(cls) -> "LogSettings":
        environment = str(Config.ENVIRONMENT).lower()
        production = environment == "production"

        json_output = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        colors = (
            not json_output
            and not production
            and bool(Config.LOG_COLORS)
            and sys.stdout.isatty()
        )

        level = getattr(logging, str(Config.LOG_LEVEL).upper(), None)

        return cls(
            environment=environment,
            level=level if isinstance(level, int) else logging.INFO,
            json_output=json_output,
            colors=colors,
            to_file=bool(Config.LOG_TO_FILE),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_dropped: int
    listener_errors: int


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the active operation context onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _operation_context.get()
        for field_name in CONTEXT_FIELDS:
            setattr(record, field_name, context.get(field_name) or _UNSET)
        if record.component == _UNSET:
            record.component = record.name.partition(".")[0]
        return True


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS: Dict[int, str] = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;91m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


class JSONFormatter(logging.Formatter):
    """One JSON object per record: core fields, context, then ``extra``."""

    RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field_name in CONTEXT_FIELDS:
            value = getattr(record, field_name, None)
            if value not in (None, _UNSET):
                payload[field_name] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in self.RESERVED
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _QueueStats:
    dropped = 0
    listener_errors = 0


class DroppingQueueHandler(QueueHandler):
    """Never blocks the caller; records are dropped when the queue is full."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _QueueStats.dropped += 1


class CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _QueueStats.listener_errors += 1
        sys.stderr.write(f"cadence logging: handler failed for record from {record.name}\n")


_listener: Optional[QueueListener] = None
_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_INIT_FLAG = "_cadence_logging_initialized"

NOISY_LOGGERS = ("discord", "discord.http", "discord.gateway", "sqlalchemy.engine", "asyncio")


def _console_handler(settings: LogSettings) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if settings.json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter_class = ColoredFormatter if settings.colors else logging.Formatter
        handler.setFormatter(
            formatter_class(fmt=settings.text_format, datefmt=settings.date_format)
        )
    return handler


def _file_handler(settings: LogSettings) -> logging.Handler:
    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(settings.logs_dir / settings.file_name),
        when="midnight",
        backupCount=settings.file_backups,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue handler on the root logger. Idempotent."""
    global _listener, _queue

    root = logging.getLogger()
    if getattr(root, _INIT_FLAG, False):
        return

    settings = LogSettings.from_config()

    handlers: List[logging.Handler] = [_console_handler(settings)]
    if settings.to_file:
        handlers.append(_file_handler(settings))
    for handler in handlers:
        handler.setLevel(settings.level)

    _queue = queue.Queue(settings.queue_size)
    _listener = CountingQueueListener(_queue, *handlers, respect_handler_level=True)
    _listener.start()

    queue_handler = DroppingQueueHandler(_queue)
    queue_handler.setLevel(settings.level)
    queue_handler.addFilter(ContextFilter())

    root.handlers.clear()
    root.setLevel(settings.level)
    root.addHandler(queue_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    setattr(root, _INIT_FLAG, True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": logging.getLevelName(settings.level),
            "json_output": settings.json_output,
            "to_file": settings.to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue, stop the listener and detach handlers."""
    global _listener, _queue

    root = logging.getLogger()
    if not getattr(root, _INIT_FLAG, False):
        return

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    setattr(root, _INIT_FLAG, False)
    _queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INIT_FLAG, False)),
        queue_size=_queue.qsize() if _queue is not None else 0,
        queue_max_size=_queue.maxsize if _queue is not None else 0,
        records_dropped=_QueueStats.dropped,
        listener_errors=_QueueStats.listener_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def _merge_context(
    base: Dict[str, Any],
    user_id: Optional[int],
    guild_id: Optional[int],
    component: Optional[str],
    operation: Optional[str],
    correlation_id: Optional[str],
    extra: Dict[str, Any],
) -> Dict[str, Any]:
    merged = dict(base)
    if user_id is not None:
        merged["user_id"] = str(user_id)
    if guild_id is not None:
        merged["guild_id"] = str(guild_id)
    if component is not None:
        merged["component"] = component
    if operation is not None:
        merged["operation"] = operation
    if correlation_id:
        merged["correlation_id"] = correlation_id
    merged.update(extra)
    return merged


class LogContext:
    """
    Bind operation context to every log record emitted inside the block.

    Works as both a sync and an async context manager. Nested contexts
    inherit the outer values and override only what they set. A
    correlation id is generated for the outermost context.

    Example
    -------
    >>> async with LogContext(user_id=42, operation="record_activity"):
    ...     logger.info("Applying delta")
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        guild_id: Optional[int] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context = _merge_context(
            _operation_context.get(),
            user_id,
            guild_id,
            component,
            operation,
            correlation_id,
            extra,
        )
        self.context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _operation_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _operation_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(
    user_id: Optional[int] = None,
    guild_id: Optional[int] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Update the current task's context without a ``with`` block."""
    _operation_context.set(
        _merge_context(
            _operation_context.get(),
            user_id,
            guild_id,
            component,
            operation,
            correlation_id,
            extra,
        )
    )


def get_log_context() -> Dict[str, Any]:
    return dict(_operation_context.get())


def clear_log_context() -> None:
    _operation_context.set({})


setup_logging()
