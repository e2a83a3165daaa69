"""Logging configuration and custom formatters for feedplay.

Logs go to stderr so that command output on stdout stays clean. Two output
formats are supported: a human-readable line format that appends ``extra``
fields and a condensed exception chain, and JSON via python-json-logger.
"""

from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
import json
import logging
from logging.config import dictConfig
import sys
from typing import Any, Literal

_original_log_record_factory = logging.getLogRecordFactory()


def custom_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    """Create a log record that carries the attributes of its exception chain.

    Public attributes of every exception in the ``__cause__``/``__context__``
    chain (e.g. ``feed_id`` on a FeedNotFoundError) are collected into
    ``exc_custom_attrs``, and each exception message into ``semantic_trace``.

    Args:
        *args: Arguments passed to the original log record factory.
        **kwargs: Keyword arguments passed to the original log record factory.

    Returns:
        LogRecord with the additional exception information attached.
    """
    record = _original_log_record_factory(*args, **kwargs)

    if record.exc_info and record.exc_info[1]:
        collected_attrs: dict[str, Any] = {}
        trace: list[str] = []

        current_exc: BaseException | None = record.exc_info[1]
        while current_exc:
            for name, val in vars(current_exc).items():
                if not name.startswith("_") and name not in collected_attrs:
                    collected_attrs[name] = val
            trace.append(f"{type(current_exc).__name__}: {current_exc}")
            current_exc = current_exc.__cause__ or current_exc.__context__

        if collected_attrs:
            record.exc_custom_attrs = collected_attrs
        if trace:
            record.semantic_trace = trace

    return record


_context_id_var: ContextVar[str | None] = ContextVar("context_id", default=None)


def set_context_id(context_id: str) -> None:
    """Set the context ID for the current async context.

    Args:
        context_id: The context identifier to set (e.g., "refresh-1700000000").
    """
    _context_id_var.set(context_id)


@contextmanager
def context_id_scope(context_id: str) -> Generator[None]:
    """Tag every log line emitted inside the block with ``context_id``.

    The previous context ID is restored on exit, so scopes can nest and
    concurrently running tasks keep their own IDs.

    Args:
        context_id: The context identifier for the duration of the block.
    """
    token = _context_id_var.set(context_id)
    try:
        yield
    finally:
        _context_id_var.reset(token)


class ContextIdFilter(logging.Filter):
    """Inject the current context_id into each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach the context_id, if one is set.

        Args:
            record: The log record to modify.

        Returns:
            Always True to allow the record to be processed.
        """
        context_id = _context_id_var.get()
        if context_id is not None:
            record.context_id = context_id
        return True


_should_include_stacktrace: bool = False

_STANDARD_RECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
        "context_id",
        "exc_custom_attrs",
        "semantic_trace",
    }
)


def _format_extra_value(value: Any) -> str:
    if isinstance(value, dict | list | tuple):
        return json.dumps(value, sort_keys=True, separators=(", ", ":"), default=str)
    return str(value)


class HumanReadableExtrasFormatter(logging.Formatter):
    """Format records as one human-readable line followed by error details.

    The line is ``<time> <LEVEL> [<logger>] [CtxID:<id>] key:value ... - msg``.
    Exception attributes collected by :func:`custom_record_factory` are merged
    with the call-site ``extra`` fields; call-site values win on collision.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: Literal["%", "{", "$"] = "%",
        validate: bool = True,
        *,
        defaults: Mapping[str, Any] | None = None,
    ):
        super().__init__(fmt, datefmt, style, validate, defaults=defaults)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with extra fields and a condensed error trace.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        parts: list[str] = [
            self.formatTime(record, self.datefmt),
            record.levelname,
            f"[{record.name}]",
        ]

        ctx_id = getattr(record, "context_id", None)
        if ctx_id is not None:
            parts.append(f"CtxID:{ctx_id}")

        extras: dict[str, Any] = {}
        exc_custom_attributes = getattr(record, "exc_custom_attrs", None)
        if isinstance(exc_custom_attributes, dict):
            extras.update(exc_custom_attributes)  # type: ignore
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                extras[key] = value

        for key, value in extras.items():
            try:
                parts.append(f"{key}:{_format_extra_value(value)}")
            except TypeError:
                parts.append(f"{key}=[Unserializable Value: {type(value)}]")

        message = record.getMessage()
        parts.append(f"- {message}" if message else "-")
        line = " ".join(filter(None, parts))

        if record.exc_info:
            if _should_include_stacktrace:
                if not record.exc_text:
                    record.exc_text = self.formatException(record.exc_info)
                if record.exc_text:
                    line += "\n" + record.exc_text
            else:
                trace: list[str] | None = getattr(record, "semantic_trace", None)
                if trace:
                    line += f"\nError: {trace[0]}"
                    for msg in trace[1:]:
                        line += f"\n  Caused by: {msg}"

        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)

        return line


LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "context_id_filter": {
            "()": ContextIdFilter,
        },
    },
    "formatters": {
        "human_readable_formatter": {
            "()": HumanReadableExtrasFormatter,
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "json_formatter": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console_handler": {
            "class": "logging.StreamHandler",
            "formatter": "human_readable_formatter",
            "stream": "ext://sys.stderr",
            "filters": ["context_id_filter"],
        },
    },
    "loggers": {
        "feedplay": {
            "handlers": ["console_handler"],
            "level": "WARNING",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_format_type: Literal["human", "json"],
    app_log_level_name: str,
    include_stacktrace: bool,
) -> None:
    """Configure logging for the application.

    Args:
        log_format_type: Format for logs ('human' or 'json').
        app_log_level_name: Logging level name (e.g., 'INFO', 'DEBUG').
        include_stacktrace: Whether to include full stack traces in error logs.
    """
    global _should_include_stacktrace
    _should_include_stacktrace = include_stacktrace

    logging.setLogRecordFactory(custom_record_factory)

    log_level_upper = app_log_level_name.upper()
    if not isinstance(getattr(logging, log_level_upper, None), int):
        print(
            f"Warning: Invalid LOG_LEVEL '{app_log_level_name}'. Defaulting to WARNING.",
            file=sys.stderr,
        )
        log_level_upper = "WARNING"
    LOGGING_CONFIG["loggers"]["feedplay"]["level"] = log_level_upper

    match log_format_type.lower():
        case "json":
            LOGGING_CONFIG["handlers"]["console_handler"]["formatter"] = (
                "json_formatter"
            )
        case _:
            LOGGING_CONFIG["handlers"]["console_handler"]["formatter"] = (
                "human_readable_formatter"
            )

    dictConfig(LOGGING_CONFIG)
