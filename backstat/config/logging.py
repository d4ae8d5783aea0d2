"""Structured logging configuration and task-scoped log context."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TextIO, cast

from typing_extensions import override

if TYPE_CHECKING:
    from collections.abc import Iterator

    from backstat.config.settings import LogLevel

# Correlation ID shared by one scheduler tick or task run
correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
task_name: ContextVar[str | None] = ContextVar("task_name", default=None)

_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    },
)


class JSONFormatter(logging.Formatter):
    """Render each log record as one JSON line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as a JSON string."""
        log_data: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "correlation_id": correlation_id.get(),
            "task": task_name.get(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_trace"] = self.formatStack(record.stack_info)

        protected_attrs = set(log_data.keys())
        record_dict = cast("dict[str, object]", record.__dict__)
        for key, value in record_dict.items():
            if key in _RESERVED_RECORD_ATTRS or key.startswith("_"):
                continue
            if key in protected_attrs:
                log_data[f"extra_{key}"] = value
                continue
            log_data[key] = value

        return json.dumps(log_data, default=str)


def init_logging(level: LogLevel, *, stream: TextIO | None = None) -> None:
    """Install the JSON handler on the root logger at the given level."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # pytest's capture handler must survive re-initialization.
    for existing in root_logger.handlers[:]:
        if type(existing).__name__ != "LogCaptureHandler":
            root_logger.removeHandler(existing)

    root_logger.addHandler(handler)


@contextmanager
def bind_task_context(name: str, *, run_id: str | None = None) -> Iterator[None]:
    """Tag every record emitted inside the block with the task name and run id."""
    name_token = task_name.set(name)
    id_token = correlation_id.set(run_id) if run_id is not None else None
    try:
        yield
    finally:
        task_name.reset(name_token)
        if id_token is not None:
            correlation_id.reset(id_token)
