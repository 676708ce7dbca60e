"""
QuizRank Logging Subsystem

Purpose
-------
Structured, non-blocking logging for the ranking engine. Records are
enriched with the ranking context of the current task (user, quiz,
operation, correlation id) and written by a background listener thread so
file and console I/O never run on the event loop.

Responsibilities
----------------
- setup_logging() / shutdown_logging(): install and tear down the root
  QueueHandler + QueueListener pair.
- Console output: JSON in production, colored text on a development TTY,
  plain text otherwise. A daily rotating JSON file in Config.LOGS_DIR.
- LogContext / set_log_context(): bind ranking context to a ContextVar;
  ContextFilter copies it onto each record on the producing side.
- get_logging_health(): queue depth and drop counters.

Design Notes
------------
- The queue is bounded. When it is full the record is dropped and counted
  instead of blocking the caller.
- Values passed with `extra={...}` win over the ambient context and end up
  under "extra" in JSON output.
- Settings are read from Config at setup time, so tests can reload Config
  and call setup_logging() again after shutdown_logging().
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

from quizrank.core.config.config import Config

_log_context: ContextVar[Dict[str, Any]] = ContextVar("quizrank_log_context", default={})

NOT_SET = "N/A"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "quizrank_daily.json.log"
LOG_FILE_BACKUPS = 1
QUEUE_MAX_SIZE = 10_000

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("asyncio", "httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class _Settings:
    environment: str
    level: int
    json_console: bool
    colors: bool
    logs_dir: Path

    @classmethod
    def from_config(cls) -> "_Settings":
        environment = str(Config.ENVIRONMENT).lower()
        production = environment == "production"
        level = logging.getLevelName(str(Config.LOG_LEVEL).upper())
        if not isinstance(level, int):
            level = logging.INFO

        json_console = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        colors = (
            not json_console
            and not production
            and bool(Config.LOG_COLORS)
            and sys.stdout.isatty()
        )
        return cls(
            environment=environment,
            level=level,
            json_console=json_console,
            colors=colors,
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


class _Counters:
    enqueued = 0
    dropped = 0
    listener_errors = 0

    @classmethod
    def reset(cls) -> None:
        cls.enqueued = cls.dropped = cls.listener_errors = 0


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound ranking context onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()

        for field in ("user_id", "quiz_id", "operation"):
            if not hasattr(record, field):
                setattr(record, field, context.get(field) or NOT_SET)

        correlation_id = context.get("correlation_id") or context.get("request_id")
        record.correlation_id = correlation_id or NOT_SET
        record.request_id = context.get("request_id", record.correlation_id)
        record.component = context.get("component") or record.name.split(".", 1)[0]
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# Attributes every LogRecord carries; anything else came from extra={...}
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    CONTEXT_FIELDS = (
        "user_id",
        "quiz_id",
        "correlation_id",
        "request_id",
        "component",
        "operation",
    )

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

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, NOT_SET):
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
            and key not in self.CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _DroppingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _Counters.enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _Counters.dropped += 1
            sys.stderr.write("QuizRank logging queue full; record dropped.\n")


class _CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _Counters.listener_errors += 1
        sys.stderr.write("QuizRank log handler failed while writing a record.\n")


_listener: Optional[QueueListener] = None
_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_INIT_FLAG = "_quizrank_logging_initialized"


def _is_initialized() -> bool:
    return bool(getattr(logging.getLogger(), _INIT_FLAG, False))


def _output_handlers(settings: _Settings) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if settings.json_console:
        console.setFormatter(JSONFormatter())
    elif settings.colors:
        console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT))
    else:
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))

    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    daily = TimedRotatingFileHandler(
        settings.logs_dir / LOG_FILE_NAME,
        when="midnight",
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
        utc=True,
    )
    daily.setFormatter(JSONFormatter())

    for handler in (console, daily):
        handler.setLevel(settings.level)
    return [console, daily]


def setup_logging() -> None:
    """Install the queue-backed root handler. Calling it twice is a no-op."""
    global _listener, _queue

    if _is_initialized():
        return

    settings = _Settings.from_config()
    root = logging.getLogger()
    root.handlers.clear()
    root.filters.clear()
    root.setLevel(settings.level)
    _Counters.reset()

    _queue = queue.Queue(QUEUE_MAX_SIZE)
    _listener = _CountingQueueListener(
        _queue, *_output_handlers(settings), respect_handler_level=True
    )
    _listener.start()

    # Filter on the producing side so ContextVars are read in the caller's task
    producer = _DroppingQueueHandler(_queue)
    producer.setLevel(settings.level)
    producer.addFilter(ContextFilter())
    root.addHandler(producer)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    setattr(root, _INIT_FLAG, True)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": logging.getLevelName(settings.level),
            "json": settings.json_console,
            "logs_dir": str(settings.logs_dir),
        },
    )


def shutdown_logging() -> None:
    """Stop the listener, flushing queued records, and detach root handlers."""
    global _listener, _queue

    if not _is_initialized():
        return

    root = logging.getLogger()
    logging.getLogger(__name__).info("Shutting down logging")

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
        initialized=_is_initialized(),
        queue_size=_queue.qsize() if _queue is not None else 0,
        queue_max_size=_queue.maxsize if _queue is not None else 0,
        records_enqueued=_Counters.enqueued,
        records_dropped=_Counters.dropped,
        listener_errors=_Counters.listener_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind ranking context for the duration of a block.

    Usage:
        async with LogContext(user_id="u1", quiz_id="q9", operation="submit"):
            logger.info("Quiz recorded")
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        quiz_id: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        correlation = correlation_id or request_id or uuid.uuid4().hex[:8]
        self.context: Dict[str, Any] = {
            "user_id": NOT_SET if user_id is None else str(user_id),
            "quiz_id": NOT_SET if quiz_id is None else str(quiz_id),
            "component": component,
            "operation": operation,
            "correlation_id": correlation,
            "request_id": request_id or correlation,
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(
    user_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge fields into the current context without a scope."""
    context = dict(_log_context.get())

    for key, value in (
        ("user_id", user_id),
        ("quiz_id", quiz_id),
        ("component", component),
        ("operation", operation),
    ):
        if value is not None:
            context[key] = str(value) if key in ("user_id", "quiz_id") else value

    if correlation_id:
        context["correlation_id"] = correlation_id
    if request_id:
        context["request_id"] = request_id
        context.setdefault("correlation_id", request_id)

    context.update(extra)
    _log_context.set(context)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})
