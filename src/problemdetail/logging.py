"""Structured logging helpers with correlation IDs.

This module provides a LoggerAdapter that injects the current correlation ID
and problem fields into log records, a JSON formatter rendering those
records, and module-level loggers with NullHandler so the library never
configures handlers on its own.

Examples
--------
>>> from problemdetail.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Problem rendered", extra={"problem_status": 404})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from types import TracebackType

    from problemdetail.types import JsonValue

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
]

# Context variable for correlation ID propagation (async-safe)
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_STRUCTURED_FIELDS = (
    "correlation_id",
    "problem_type",
    "problem_status",
    "problem_instance",
)

# Standard LogRecord attributes that never end up in the JSON payload
_EXCLUDED_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "ts",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as JSON with timestamp, level, name, message and
    the structured problem fields. The correlation ID is read from the
    context variable when the record does not carry one. Tracebacks are
    rendered into an ``exception`` member.

    Examples
    --------
    >>> import logging
    >>> handler = logging.StreamHandler()
    >>> handler.setFormatter(JsonFormatter())
    >>> logging.getLogger("demo").addHandler(handler)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format. May include extra fields in record.__dict__.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, JsonValue] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value

        if "correlation_id" not in data:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _EXCLUDED_ATTRIBUTES
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects structured context fields.

    Fields bound at construction are merged into every call's ``extra``
    without overriding values passed explicitly, and the correlation ID is
    copied from the context variable when set.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries. Defaults to None.
    """

    def process(
        self, msg: object, kwargs: MutableMapping[str, Any]
    ) -> tuple[object, MutableMapping[str, Any]]:
        """Merge bound and context fields into ``kwargs['extra']``.

        Parameters
        ----------
        msg : object
            Log message.
        kwargs : MutableMapping[str, Any]
            Keyword arguments from the logging call.

        Returns
        -------
        tuple[object, MutableMapping[str, Any]]
            The message and the updated keyword arguments.
        """
        extra = dict(kwargs.get("extra") or {})
        for key, value in (self.extra or {}).items():
            extra.setdefault(key, value)
        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **fields: object) -> LoggerAdapter:
        """Return a new adapter with ``fields`` added to the bound fields.

        Parameters
        ----------
        **fields : object
            Structured fields to inject into every record.

        Returns
        -------
        LoggerAdapter
            Adapter over the same logger.
        """
        merged: dict[str, object] = dict(self.extra or {})
        merged.update(fields)
        return LoggerAdapter(self.logger, merged)


def get_logger(name: str, *, null_handler: bool = True, **fields: object) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Module-level loggers receive a NullHandler when they have no handlers so
    that importing the library never prints. Applications configure
    handlers via :func:`setup_logging` or their own logging setup. Loggers
    owned by the application, like problem log channels, are requested with
    ``null_handler=False`` so unconfigured applications still get
    ``logging.lastResort`` output.

    Parameters
    ----------
    name : str
        Logger name, typically ``__name__`` or a problem log channel.
    null_handler : bool, optional
        Attach a NullHandler when the logger has no handlers. Defaults to True.
    **fields : object
        Structured fields bound to every record of the adapter.

    Returns
    -------
    LoggerAdapter
        Logger adapter with structured context injection.

    Examples
    --------
    >>> logger = get_logger("app.billing", problem_status=402)
    >>> logger.logger.name
    'app.billing'
    """
    logger = logging.getLogger(name)

    # Add NullHandler if no handlers exist (prevents "no handler" output in libraries)
    if null_handler and not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return LoggerAdapter(logger, fields)


def setup_logging(level: int | str = logging.INFO, fmt: str = "json") -> None:
    """Configure the root logger.

    Parameters
    ----------
    level : int | str, optional
        Logging level threshold. Defaults to ``logging.INFO``.
    fmt : str, optional
        ``"json"`` for :class:`JsonFormatter`, ``"text"`` for the standard
        formatter. Defaults to ``"json"``.

    Raises
    ------
    ValueError
        If ``fmt`` is neither ``"json"`` nor ``"text"``.
    """
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    elif fmt == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        msg = f"Unsupported log format: {fmt!r}"
        raise ValueError(msg)
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID in context for async propagation.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set (or None to clear).
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context.

    Returns
    -------
    str | None
        Current correlation ID, or None if not set.
    """
    return _correlation_id.get()


class CorrelationContext:
    """Context manager that sets a correlation ID and restores the previous one.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set in context.

    Examples
    --------
    >>> with CorrelationContext(correlation_id="req-123"):
    ...     assert get_correlation_id() == "req-123"
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_val, exc_tb

