"""Structured logging and step tracing.

Uses standard library logging with a JSON formatter. `step()` brackets a unit
of work with start/end records so a deployment can be followed in the logs.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

_RESERVED_LOG_RECORD_ATTRS: set[str] = {
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
    "taskName",
    "thread",
    "threadName",
}

_step_logger = logging.getLogger("fetch_deployer.trace")


class JsonFormatter(logging.Formatter):
    """A minimal JSON formatter for logging records."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str) -> None:
    """Configure root logging with structured JSON output."""

    root = logging.getLogger()

    # Remove any existing handlers to avoid duplicate logs when re-configuring.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(level.upper())

    # uvicorn installs its own handlers; route them through ours instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.propagate = True


@contextmanager
def step(name: str, **context: object) -> Iterator[None]:
    """Trace a named step.

    Emits a debug record on entry and an info record on exit carrying the
    elapsed time. A failing step is logged and the exception re-raised.
    """

    started = time.perf_counter()
    _step_logger.debug("Step started: %s", name, extra={"step": name, **context})
    try:
        yield
    except BaseException:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        _step_logger.warning(
            "Step failed: %s",
            name,
            extra={"step": name, "elapsed_ms": elapsed_ms, **context},
        )
        raise
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    _step_logger.info(
        "Step finished: %s",
        name,
        extra={"step": name, "elapsed_ms": elapsed_ms, **context},
    )
