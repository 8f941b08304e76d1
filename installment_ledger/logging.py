"""Logging setup for installment-ledger.

Ledger modules log through ``logging.getLogger(__name__)``. Records may carry
a ``context`` mapping (contract id, actor, task name), either passed as
``extra={"context": {...}}`` or bound once with ``get_logger``; both
formatters render it.
"""

import json
import logging
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, TextIO

from installment_ledger.exceptions import ConfigurationError

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Held at WARNING whatever the ledger level is
QUIET_LOGGERS = ("confluent_kafka", "psycopg", "faker")


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install a single root handler for installment-ledger.

    Parameters
    ----------
    level : str
        Log level name; unknown names fall back to INFO.
    format_type : str
        ``"standard"`` for pipe-separated lines, ``"json"`` for one object per line.
    stream : TextIO | None
        Destination; stdout by default.

    Returns
    -------
    logging.Handler
        The installed handler.
    """
    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    elif format_type == "standard":
        formatter = StandardFormatter()
    else:
        raise ConfigurationError(f"Unknown log format: {format_type}")

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    logging.getLogger("installment_ledger").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def _record_context(record: logging.LogRecord) -> Mapping[str, Any]:
    context = getattr(record, "context", None)
    return context if isinstance(context, Mapping) else {}


class StandardFormatter(logging.Formatter):
    """Pipe-separated line with any context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(fmt=STANDARD_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, rest = line.partition("\n")
        return f"{head} | {pairs}{sep}{rest}"


class JsonFormatter(logging.Formatter):
    """One JSON object per record; context keys are merged into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_record_context(record))
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Decimal amounts and dates fall back to str
        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextAdapter(logging.LoggerAdapter):
    """Logger that attaches bound context to every record it emits.

    Context given per call through ``extra={"context": {...}}`` is merged
    over the bound values.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**(self.extra or {}), **extra.get("context", {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> "ContextAdapter":
        """Return a new adapter with ``context`` added to the bound values."""
        return ContextAdapter(self.logger, {**(self.extra or {}), **context})


def get_logger(name: str, **context: Any) -> ContextAdapter:
    """Get a logger for ``name`` with ``context`` bound to its records.

    Parameters
    ----------
    name : str
        Logger name (usually __name__).
    **context : Any
        Values attached to every record, e.g. ``contract_id="S0001"``.

    Returns
    -------
    ContextAdapter
        Adapter over ``logging.getLogger(name)``.
    """
    return ContextAdapter(logging.getLogger(name), context)
