"""
Structured logging configuration.

Every record passes through ``ContextFilter``, which stamps it with the
current request id (inside a request) or the current scheduler job name
(inside ``job_context``).

Format:
    LOG_FORMAT=json|text overrides; otherwise JSON outside DEBUG/TESTING.
Level:
    LOG_LEVEL, default DEBUG in development, INFO elsewhere.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

from flask import g, has_request_context, request

_current_job: ContextVar[str | None] = ContextVar("taskflow_job", default=None)

# LogRecord attributes copied into JSON output when set
_EXTRA_FIELDS = (
    "request_id",
    "job_name",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "project_id",
    "user_id",
)

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "apscheduler")


@contextmanager
def job_context(job_name: str):
    """Tag every record logged inside the block with ``job_name``."""
    token = _current_job.set(job_name)
    try:
        yield
    finally:
        _current_job.reset(token)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
            record.method = getattr(record, "method", None) or request.method
            record.path = getattr(record, "path", None) or request.path
        if getattr(record, "job_name", None) is None:
            record.job_name = _current_job.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update({
            key: getattr(record, key) for key in _EXTRA_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line text for local development; colored when writing to a TTY."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = False):
        super().__init__(datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        tags = []
        if getattr(record, "job_name", None):
            tags.append(f"job={record.job_name}")
        if getattr(record, "request_id", None):
            tags.append(f"req={record.request_id}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        suffix = f" [{' '.join(tags)}]" if tags else ""

        line = f"{self.formatTime(record, self.datefmt)} {level} {record.name}: {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_debug = app.config.get("DEBUG", False)

    fmt = os.getenv("LOG_FORMAT", "").lower() or ("text" if is_debug or is_testing else "json")
    level_name = os.getenv("LOG_LEVEL", "DEBUG" if is_debug else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ContextFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ReadableFormatter(use_color=sys.stderr.isatty()))

    # One handler even across repeated create_app() calls
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
