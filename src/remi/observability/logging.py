"""Structured logging for remi.

Two output modes share one set of fields: JSON lines for log shipping and a
single-line console format for interactive use. Both append the storage
context (backend name and operation) bound through ``LogContext``.

Usage:
    from remi.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="DEBUG")

    with LogContext(storage_backend="remi:s3", operation="upload"):
        logger.info("Uploading")  # record carries backend and operation
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import UTC, datetime
from typing import Any

import orjson

storage_backend_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "storage_backend", default=""
)
operation_var: contextvars.ContextVar[str] = contextvars.ContextVar("operation", default="")

_CONTEXT_VARS = {
    "storage_backend": storage_backend_var,
    "operation": operation_var,
}

# Anything on a record beyond these came in through `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

# SDK loggers that are chatty below WARNING
_NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "azure", "google")

_LEVEL_COLORS = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


def current_context() -> dict[str, str]:
    """Storage context bound in the current execution context."""
    return {key: value for key, var in _CONTEXT_VARS.items() if (value := var.get())}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Example:
        {"timestamp": "2026-10-19T09:12:01.532000+00:00", "level": "INFO",
         "logger": "remi.storage.local", "message": "Walked through ...",
         "function": "_blobs", "line": 185,
         "storage_backend": "remi:filesystem", "operation": "blobs"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(current_context())
        entry.update(_extra_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter for terminals.

    2026-10-19 09:12:01 | INFO     | remi.storage.s3 | Uploaded [a.txt] | backend=remi:s3 op=upload
    """

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        color = _LEVEL_COLORS.get(record.levelno)
        if self.use_colors and color:
            return f"\033[{color}m{level}\033[0m"
        return level

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, self.datefmt),
            self._level(record),
            record.name,
            record.getMessage(),
        ]
        context = current_context()
        if context:
            parts.append(
                " ".join(
                    f"{'backend' if key == 'storage_backend' else 'op'}={value}"
                    for key, value in context.items()
                )
            )

        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    json_format: bool = False,
    level: str | int = "INFO",
    use_colors: bool = True,
) -> None:
    """Route all records to stderr with the chosen formatter.

    Replaces any handlers already on the root logger, so calling it again
    reconfigures rather than duplicates output.

    Args:
        json_format: Emit JSON lines instead of the console format
        level: Root level, by name (case-insensitive) or number
        use_colors: Color levels when stderr is a terminal
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """Bind storage context to every record logged inside the block.

    Only ``storage_backend`` and ``operation`` are recognized; other keys
    are ignored. Nested contexts restore the outer values on exit.
    """

    def __init__(self, **fields: str) -> None:
        self.fields = {key: value for key, value in fields.items() if key in _CONTEXT_VARS}
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.fields.items():
            var = _CONTEXT_VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
