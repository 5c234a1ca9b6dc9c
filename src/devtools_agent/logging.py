from __future__ import annotations

import contextvars
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

from .errors import DeadlineExceeded

_run_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("run_context", default={})

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Chatty at INFO; only surfaced when the run itself is at DEBUG.
DEPENDENCY_LOGGERS = ("httpx", "openai", "mcp_use", "langchain")


class ORJSONFormatter(logging.Formatter):
    """One JSON object per record, tagged with the current run context."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - fmt
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        payload.update(_run_context.get({}))
        if record.exc_info:
            error = record.exc_info[1]
            if isinstance(error, DeadlineExceeded):
                payload["error_kind"] = error.kind
            payload["error"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


def normalize_level(level: str | None) -> str:
    """Map a free-form level name onto a supported one, defaulting to INFO."""

    if not level:
        return "INFO"
    candidate = level.strip().upper()
    if candidate == "WARN":
        candidate = "WARNING"
    return candidate if candidate in LOG_LEVELS else "INFO"


def setup_logging(log_level: str = "INFO", log_file: Path | None = None) -> None:
    level = normalize_level(log_level)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = ORJSONFormatter()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    dependency_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in DEPENDENCY_LOGGERS:
        logging.getLogger(name).setLevel(dependency_level)


def set_run_context(**kwargs: Any) -> None:
    """Attach contextual metadata to subsequent log records."""

    _run_context.set(dict(kwargs))
